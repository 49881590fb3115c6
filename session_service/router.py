"""
TNUA Session Service Router

Endpoints for opening workout sessions, pushing pose frames and streaming
exercise and emergency updates over WebSocket.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from core.websocket import MessageType, WebSocketMessage, connection_manager
from shared.errors import ConfigurationError, SessionLimitError
from shared.events import EventType

from .models import FrameResult, WorkoutSession, get_session_registry

logger = logging.getLogger(__name__)

router = APIRouter()


# ============= Pydantic Models =============

class CreateSessionRequest(BaseModel):
    vocabulary: str = "blazepose"
    config: Optional[Dict[str, Any]] = None


class KeypointPayload(BaseModel):
    name: str
    x: float
    y: float
    z: Optional[float] = None
    score: float


class FramePayload(BaseModel):
    score: float
    keypoints: List[KeypointPayload]
    timestamp: Optional[float] = None


# ============= Helpers =============

def _get_session_or_404(session_id: str) -> WorkoutSession:
    session = get_session_registry().get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return session


def _session_status(session: WorkoutSession) -> Dict[str, Any]:
    return {
        "session_id": session.session_id,
        "exercise": session.exercise_state.to_dict(),
        "emergency": session.emergency_state.to_dict(),
    }


async def publish_result(session_id: str, result: FrameResult) -> int:
    """Broadcast a frame's outcome to every client watching the session."""
    sent = 0

    if result.error:
        return await connection_manager.broadcast_to_session(session_id, WebSocketMessage(
            type=MessageType.ERROR,
            payload=result.error.to_dict()
        ))

    if result.processed:
        sent += await connection_manager.broadcast_to_session(session_id, WebSocketMessage(
            type=MessageType.EXERCISE_UPDATE,
            payload=result.exercise.to_dict()
        ))

    for event in result.events:
        if event.type == EventType.EMERGENCY_DETECTED:
            message_type = MessageType.EMERGENCY_DETECTED
        elif event.type == EventType.EMERGENCY_RESOLVED:
            message_type = MessageType.EMERGENCY_RESOLVED
        else:
            continue
        sent += await connection_manager.broadcast_to_session(session_id, WebSocketMessage(
            type=message_type,
            payload={**event.to_dict(), "emergency": result.emergency.to_dict()}
        ))

    return sent


async def evict_idle_sessions():
    """Drop sessions nobody has used for SESSION_IDLE_TIMEOUT and close their sockets."""
    for session_id in get_session_registry().evict_idle():
        await connection_manager.close_session(session_id, reason="idle")


# ============= REST Endpoints =============

@router.post("")
async def create_session(request: CreateSessionRequest):
    """
    Open a workout session.

    ``config`` may override any engine tunable for this session only.
    """
    await evict_idle_sessions()
    try:
        session = get_session_registry().create_session(request.vocabulary, request.config)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SessionLimitError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return {
        "status": "created",
        "session_id": session.session_id,
        "vocabulary": request.vocabulary,
        "websocket_url": f"/api/sessions/ws/{session.session_id}"
    }


@router.get("")
async def list_sessions():
    return {"sessions": get_session_registry().list_sessions()}


@router.get("/{session_id}")
async def get_session_status(session_id: str):
    return _session_status(_get_session_or_404(session_id))


@router.get("/{session_id}/summary")
async def get_session_summary(session_id: str):
    return _get_session_or_404(session_id).summary()


@router.post("/{session_id}/frames")
async def submit_frame(session_id: str, frame: FramePayload):
    """
    Process one pose frame.

    Malformed or out-of-order frames are reported in the response's
    ``error`` field rather than as an HTTP error.
    """
    session = _get_session_or_404(session_id)
    result = session.process_frame(frame.model_dump(exclude_none=True))
    await publish_result(session_id, result)
    return result.to_dict()


@router.post("/{session_id}/reset")
async def reset_session(session_id: str):
    session = _get_session_or_404(session_id)
    session.reset()
    await connection_manager.broadcast_to_session(
        session_id,
        WebSocketMessage(type=MessageType.SESSION_RESET, payload=_session_status(session))
    )
    return {"status": "reset", **_session_status(session)}


@router.delete("/{session_id}")
async def close_session(session_id: str):
    session = _get_session_or_404(session_id)
    summary = session.summary()
    get_session_registry().remove_session(session_id)
    await connection_manager.close_session(session_id)
    return {"status": "closed", "summary": summary}


# ============= WebSocket Endpoints =============

@router.websocket("/ws/{session_id}")
async def session_stream(websocket: WebSocket, session_id: str):
    """
    Real-time session stream.

    Client sends: {"type": "pose_frame", "payload": <frame>} or {"type": "reset"}
    Every client in the session receives exercise_update, emergency_detected,
    emergency_resolved and error messages.
    """
    session = get_session_registry().get_session(session_id)
    if session is None:
        await websocket.accept()
        await websocket.send_json({
            "type": MessageType.ERROR.value,
            "payload": {"error": "Session not found"}
        })
        await websocket.close()
        return

    try:
        client = await connection_manager.connect(websocket, session_id)
    except ConnectionError:
        return

    async def handle(client_id: str, message: WebSocketMessage):
        if message.type == MessageType.POSE_FRAME:
            get_session_registry().touch(session_id)
            result = session.process_frame(message.payload)
            await connection_manager.send_to_client(client_id, WebSocketMessage(
                type=MessageType.FRAME_PROCESSED,
                payload={"timestamp": result.timestamp, "processed": result.processed, "skip_reason": result.skip_reason}
            ))
            await publish_result(session_id, result)
        elif message.type == MessageType.RESET:
            session.reset()
            await connection_manager.broadcast_to_session(
                session_id,
                WebSocketMessage(type=MessageType.SESSION_RESET, payload=_session_status(session))
            )
        else:
            await connection_manager.send_to_client(client_id, WebSocketMessage(
                type=MessageType.ERROR,
                payload={"error": f"Unsupported message type: {message.type}"}
            ))

    try:
        while True:
            data = await websocket.receive_text()
            await connection_manager.handle_message(client.client_id, data, handle)
    except WebSocketDisconnect:
        await connection_manager.disconnect(client.client_id)
    except Exception as e:
        logger.error(f"WebSocket error for {client.client_id}: {e}")
        await connection_manager.disconnect(client.client_id)
