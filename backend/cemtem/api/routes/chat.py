"""Web chat: session issuing and the per-session websocket."""
import json
import logging
import uuid

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from cemtem.agent.session_router import SessionRouter
from cemtem.schemas.messaging import Channel
from cemtem.schemas.records import ChatSessionCreated
from cemtem.services.messenger import WebSessionHub

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/sessions", response_model=ChatSessionCreated)
def create_session():
    """New web chat session id. The widget then opens /chat/ws/{session_id}."""
    return ChatSessionCreated(session_id=str(uuid.uuid4()))


@router.websocket("/ws/{session_id}")
async def chat_socket(websocket: WebSocket, session_id: str):
    """
    Frames in:  {"type": "text", "text": "..."} or {"type": "button", "data": "<token>"}
    Frames out: {"sessionId": ..., "message": ..., "options": [[{"label", "data"}]]}
    """
    await websocket.accept()
    hub: WebSessionHub = websocket.app.state.web_hub
    session_router: SessionRouter = websocket.app.state.session_router
    hub.connect(session_id, websocket)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except ValueError:
                frame = None
            if not isinstance(frame, dict):
                await websocket.send_json({"sessionId": session_id, "error": "Invalid frame"})
                continue

            if frame.get("type") == "button":
                await session_router.on_button_press(Channel.WEB, session_id, str(frame.get("data") or ""))
            else:
                await session_router.on_text(Channel.WEB, session_id, str(frame.get("text") or ""))
    except WebSocketDisconnect:
        logger.info(f"[Chat] Session {session_id} disconnected")
    finally:
        hub.disconnect(session_id, websocket)
