"""
TNUA WebSocket Connection Manager

Every WebSocket client watches exactly one workout session. The manager keeps
the clients of each session together, fans session output out to them and
runs a periodic housekeeping pass.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Union

from fastapi import WebSocket
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from starlette.websockets import WebSocketState

from core.config import settings

logger = logging.getLogger(__name__)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class MessageType(str, Enum):
    """WebSocket message types."""
    # System messages
    PING = "ping"
    PONG = "pong"
    CONNECTED = "connected"
    ERROR = "error"

    # Client → server
    POSE_FRAME = "pose_frame"
    RESET = "reset"

    # Server → client
    FRAME_PROCESSED = "frame_processed"
    EXERCISE_UPDATE = "exercise_update"
    EMERGENCY_DETECTED = "emergency_detected"
    EMERGENCY_RESOLVED = "emergency_resolved"
    SESSION_RESET = "session_reset"
    SESSION_CLOSED = "session_closed"


class WebSocketMessage(BaseModel):
    """
    Message envelope on the wire: ``{"type", "payload", "timestamp"}``.

    ``type`` is kept as its string value; unknown types from clients are
    accepted here and rejected by the session handler.
    """
    model_config = ConfigDict(use_enum_values=True)

    type: Union[MessageType, str]
    payload: Any = None
    timestamp: str = Field(default_factory=_utc_now)


@dataclass
class ConnectedClient:
    websocket: WebSocket
    session_id: str
    client_id: str
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def is_connected(self) -> bool:
        return self.websocket.client_state == WebSocketState.CONNECTED


class ConnectionManager:
    """
    WebSocket clients grouped by the session they watch.

    Housekeeping runs every ``WS_HEARTBEAT_INTERVAL`` seconds: clients whose
    socket has gone away are dropped, then the optional ``on_tick`` callback
    runs (the app uses it to evict idle sessions).
    """

    def __init__(self, max_connections: int = None):
        self.max_connections = max_connections or settings.WS_MAX_CONNECTIONS
        self._clients: Dict[str, ConnectedClient] = {}
        self._watchers: Dict[str, Set[str]] = {}   # session_id -> client ids
        self._lock = asyncio.Lock()
        self._housekeeping: Optional[asyncio.Task] = None

    @property
    def connection_count(self) -> int:
        return len(self._clients)

    def watcher_count(self, session_id: str) -> int:
        return len(self._watchers.get(session_id, ()))

    async def connect(self, websocket: WebSocket, session_id: str) -> ConnectedClient:
        """
        Accept a client for a session and greet it with CONNECTED.

        Raises:
            ConnectionError: The server is at ``max_connections``
        """
        if self.connection_count >= self.max_connections:
            await websocket.close(code=1013, reason="Server at capacity")
            raise ConnectionError("Maximum connections reached")

        await websocket.accept()
        client = ConnectedClient(websocket=websocket, session_id=session_id, client_id=uuid.uuid4().hex[:12])

        async with self._lock:
            self._clients[client.client_id] = client
            self._watchers.setdefault(session_id, set()).add(client.client_id)

        logger.info(f"✅ Client {client.client_id} watching session {session_id}")
        await self.send_to_client(client.client_id, WebSocketMessage(
            type=MessageType.CONNECTED,
            payload={"client_id": client.client_id, "session_id": session_id}
        ))
        return client

    async def disconnect(self, client_id: str):
        async with self._lock:
            client = self._clients.pop(client_id, None)
            if client is None:
                return
            watchers = self._watchers.get(client.session_id)
            if watchers is not None:
                watchers.discard(client_id)
                if not watchers:
                    del self._watchers[client.session_id]
        logger.info(f"👋 Client {client_id} disconnected")

    async def send_to_client(self, client_id: str, message: WebSocketMessage) -> bool:
        """Send to one client. A failed send disconnects it."""
        client = self._clients.get(client_id)
        if client is None or not client.is_connected():
            return False

        try:
            await client.websocket.send_text(message.model_dump_json())
            return True
        except Exception as e:
            logger.error(f"Failed to send to {client_id}: {e}")
            await self.disconnect(client_id)
            return False

    async def broadcast_to_session(self, session_id: str, message: WebSocketMessage) -> int:
        """Send to every client watching a session. Returns the number reached."""
        sent = 0
        for client_id in list(self._watchers.get(session_id, ())):
            if await self.send_to_client(client_id, message):
                sent += 1
        return sent

    async def close_session(self, session_id: str, reason: str = "closed"):
        """Tell a session's clients it is gone and close their sockets."""
        message = WebSocketMessage(type=MessageType.SESSION_CLOSED, payload={"session_id": session_id, "reason": reason})
        for client_id in list(self._watchers.get(session_id, ())):
            client = self._clients.get(client_id)
            await self.send_to_client(client_id, message)
            await self.disconnect(client_id)
            if client is not None and client.is_connected():
                await client.websocket.close()

    async def handle_message(
        self,
        client_id: str,
        raw_message: str,
        handler: Callable[[str, WebSocketMessage], Awaitable[Any]]
    ):
        """Parse a client message, answer pings and pass everything else to ``handler``."""
        try:
            message = WebSocketMessage.model_validate_json(raw_message)
        except ValidationError:
            await self.send_to_client(client_id, WebSocketMessage(
                type=MessageType.ERROR,
                payload={"error": "Invalid JSON message"}
            ))
            return

        if message.type == MessageType.PING:
            await self.send_to_client(client_id, WebSocketMessage(type=MessageType.PONG))
            return

        try:
            await handler(client_id, message)
        except Exception as e:
            logger.error(f"Error handling {message.type} from {client_id}: {e}")
            await self.send_to_client(client_id, WebSocketMessage(
                type=MessageType.ERROR,
                payload={"error": "Internal error"}
            ))

    async def housekeeping(self, on_tick: Optional[Callable[[], Awaitable[Any]]] = None):
        """One housekeeping pass: drop dead sockets, then run ``on_tick``."""
        stale = [client_id for client_id, client in self._clients.items() if not client.is_connected()]
        for client_id in stale:
            await self.disconnect(client_id)
        if on_tick is not None:
            await on_tick()

    async def start_heartbeat(self, on_tick: Optional[Callable[[], Awaitable[Any]]] = None, interval: int = None):
        interval = interval or settings.WS_HEARTBEAT_INTERVAL

        async def loop():
            while True:
                await asyncio.sleep(interval)
                try:
                    await self.housekeeping(on_tick)
                except Exception as e:
                    logger.error(f"Housekeeping failed: {e}")

        self._housekeeping = asyncio.create_task(loop())
        logger.info(f"💓 Housekeeping every {interval}s")

    async def stop_heartbeat(self):
        if self._housekeeping:
            self._housekeeping.cancel()
            self._housekeeping = None

    def get_stats(self) -> dict:
        return {
            "total_connections": self.connection_count,
            "watched_sessions": len(self._watchers),
            "max_connections": self.max_connections
        }


connection_manager = ConnectionManager()
