"""
TNUA Configuration

Environment variables, application settings and pose-engine tunables.
"""

from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.errors import ConfigurationError


class EngineConfig(BaseModel):
    """
    Tunables for one pose-engine session.

    Angles are in degrees, distances in normalised image units and
    durations in seconds.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Smoothing
    smoothing_factor: float = Field(0.7, ge=0.0, lt=1.0)

    # Gating
    min_keypoint_score: float = Field(0.5, ge=0.0, le=1.0)
    confidence_threshold: float = Field(0.7, ge=0.0, le=1.0)

    # Classification
    squat_knee_angle: float = Field(100.0, gt=0.0, le=180.0)
    squat_hip_angle: float = Field(90.0, gt=0.0, le=180.0)
    pushup_elbow_angle: float = Field(90.0, gt=0.0, lt=180.0)
    torso_horizontal_tolerance: float = Field(0.1, gt=0.0, le=1.0)
    plank_elbow_min: float = Field(80.0, ge=0.0, le=180.0)
    plank_elbow_max: float = Field(100.0, ge=0.0, le=180.0)
    jumping_jack_spread: float = Field(0.5, gt=0.0, le=1.0)

    # Form scoring
    squat_depth_angle: float = Field(90.0, gt=0.0, lt=180.0)
    knee_over_toe_tolerance: float = Field(0.05, ge=0.0, le=1.0)

    # Rep counting
    rep_high_watermark: float = Field(80.0, ge=0.0, le=100.0)
    rep_low_watermark: float = Field(30.0, ge=0.0, le=100.0)
    rep_cooldown: float = Field(1.0, ge=0.0)
    exercise_switch_frames: int = Field(5, ge=1)

    # Emergency detection
    detection_threshold: float = Field(0.8, ge=0.0, le=1.0)
    fall_threshold: float = Field(0.3, gt=0.0, le=1.0)
    collapse_threshold: float = Field(0.4, gt=0.0, le=1.0)
    fall_window: float = Field(1.0, gt=0.0)
    baseline_window: float = Field(10.0, gt=0.0)
    collapse_dwell: float = Field(2.0, gt=0.0)
    stuck_duration: float = Field(10.0, gt=0.0)
    resolution_window: float = Field(5.0, gt=0.0)

    @model_validator(mode="after")
    def _check_ranges(self) -> "EngineConfig":
        if self.rep_low_watermark >= self.rep_high_watermark:
            raise ValueError("rep_low_watermark must be below rep_high_watermark")
        if self.plank_elbow_min > self.plank_elbow_max:
            raise ValueError("plank_elbow_min must not exceed plank_elbow_max")
        if self.fall_window > self.baseline_window:
            raise ValueError("fall_window must not exceed baseline_window")
        return self

    @classmethod
    def build(cls, **overrides: Any) -> "EngineConfig":
        """
        Create a validated config, converting validation failures into
        ConfigurationError.
        """
        try:
            return cls(**overrides)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid engine configuration: {e}") from e

    def with_overrides(self, **overrides: Any) -> "EngineConfig":
        """Return a copy of this config with some values replaced."""
        return self.build(**{**self.model_dump(), **overrides})


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Application
    APP_NAME: str = "TNUA"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8080", "http://10.0.2.2:8000"]

    # WebSocket
    WS_MAX_CONNECTIONS: int = 100
    WS_HEARTBEAT_INTERVAL: int = 30

    # Sessions
    MAX_SESSIONS: int = 50
    SESSION_IDLE_TIMEOUT: int = 900

    # Pose engine defaults (override with e.g. ENGINE__SMOOTHING_FACTOR=0.6)
    ENGINE: EngineConfig = EngineConfig()


settings = Settings()
