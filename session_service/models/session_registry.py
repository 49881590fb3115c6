"""
TNUA Session Service - Session Registry

In-memory registry of live workout sessions for the service adapter.
Sessions that see no frame or lookup for ``idle_timeout`` seconds are
evicted, so clients that vanish without closing do not hold a slot.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional

from core.config import EngineConfig, settings
from shared.errors import ConfigurationError, SessionLimitError
from shared.pose import VOCABULARIES

from .workout_session import WorkoutSession

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Creates, looks up and removes WorkoutSession instances."""

    def __init__(
        self,
        max_sessions: int = None,
        config: Optional[EngineConfig] = None,
        idle_timeout: float = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.max_sessions = max_sessions or settings.MAX_SESSIONS
        self.config = config or settings.ENGINE
        self.idle_timeout = idle_timeout or settings.SESSION_IDLE_TIMEOUT
        self.clock = clock
        self._sessions: Dict[str, WorkoutSession] = {}
        self._last_seen: Dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def create_session(self, vocabulary: str = "blazepose", overrides: Optional[Dict[str, Any]] = None) -> WorkoutSession:
        """
        Open a new session.

        Idle sessions are evicted first, so a full registry only rejects the
        request when every session is still in use.

        Args:
            vocabulary: Landmark vocabulary name ("blazepose" or "movenet")
            overrides: Engine config values to change for this session

        Raises:
            ConfigurationError: Unknown vocabulary or invalid overrides
            SessionLimitError: Registry is full
        """
        self.evict_idle()
        if len(self._sessions) >= self.max_sessions:
            raise SessionLimitError(f"Maximum sessions reached ({self.max_sessions})")

        landmarks = VOCABULARIES.get(vocabulary)
        if landmarks is None:
            raise ConfigurationError(
                f"Unknown vocabulary '{vocabulary}'. Valid: {sorted(VOCABULARIES)}"
            )

        config = self.config.with_overrides(**overrides) if overrides else self.config
        session = WorkoutSession(config=config, vocabulary=landmarks)
        self._sessions[session.session_id] = session
        self._last_seen[session.session_id] = self.clock()
        return session

    def get_session(self, session_id: str) -> Optional[WorkoutSession]:
        session = self._sessions.get(session_id)
        if session is not None:
            self.touch(session_id)
        return session

    def touch(self, session_id: str):
        """Mark a session as in use now."""
        if session_id in self._sessions:
            self._last_seen[session_id] = self.clock()

    def idle_for(self, session_id: str) -> Optional[float]:
        last_seen = self._last_seen.get(session_id)
        return None if last_seen is None else self.clock() - last_seen

    def list_sessions(self) -> List[str]:
        return list(self._sessions)

    def remove_session(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        self._last_seen.pop(session_id, None)
        if session is None:
            return False
        logger.info(f"🗑️ Session {session_id} closed: {session.summary()['total_reps']} reps")
        return True

    def evict_idle(self) -> List[str]:
        """
        Remove every session idle for longer than ``idle_timeout``.

        Returns:
            Ids of the evicted sessions
        """
        now = self.clock()
        expired = [
            session_id for session_id, last_seen in self._last_seen.items()
            if now - last_seen > self.idle_timeout
        ]
        for session_id in expired:
            logger.info(f"⏰ Session {session_id} idle for {now - self._last_seen[session_id]:.0f}s, evicting")
            self.remove_session(session_id)
        return expired


_registry: Optional[SessionRegistry] = None


def get_session_registry() -> SessionRegistry:
    """Get or create the service-wide session registry."""
    global _registry
    if _registry is None:
        _registry = SessionRegistry()
    return _registry
