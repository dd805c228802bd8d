"""Chat endpoints.

Provides the real-time WebSocket at /chat/ws and REST access to a user's
conversations and message history.
"""

import json
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect

from auth import get_current_user
from auth.models import User
from chat import ConversationQuery, ConversationView, MessageQuery, ServerEvent, StartConversationRequest
from ..services import Services, get_services

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(
    prefix="/chat",
    tags=["Chat"]
)


def _socket_token(websocket: WebSocket) -> Optional[str]:
    token = websocket.query_params.get("token")
    if token:
        return token
    header = websocket.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return None


async def _receive_event(websocket: WebSocket):
    """Read one frame and decode it as JSON, whether sent as text or bytes.

    Raises:
        WebSocketDisconnect: If the client went away
        ValueError: If the frame is not UTF-8 JSON
    """
    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))

    payload = message.get("text")
    if payload is None:
        payload = (message.get("bytes") or b"").decode("utf-8")
    return json.loads(payload)


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """WebSocket endpoint for real-time chat."""
    services: Services = websocket.app.state.services
    engine = services.chat

    # Accept first so a rejected client still sees the close code
    await websocket.accept()

    connection = await engine.connect(websocket, _socket_token(websocket))
    if connection is None:
        return

    try:
        while True:
            try:
                data = await _receive_event(websocket)
            except ValueError:
                await engine.hub.send(connection, ServerEvent.ERROR.value, {"message": "Invalid JSON"})
                continue
            await engine.handle_message(connection, data)
    except WebSocketDisconnect:
        pass
    finally:
        await engine.disconnect(connection)


@router.get("/conversations")
async def list_conversations(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    """Get the caller's conversations that have at least one message, newest first."""
    conversations = await services.chat_store.list_conversations(
        ConversationQuery(participant_id=user.id, with_messages_only=True)
    )
    return [ConversationView.for_user(conversation, user.id) for conversation in conversations]


@router.post("/conversations/start")
async def start_conversation(
    request: StartConversationRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    """Find or create the conversation with another user."""
    conversation, created = await services.chat.start_conversation(
        user,
        request.receiver_id,
        request.property_id,
        request.initial_message
    )
    return {
        "conversation": ConversationView.for_user(conversation, user.id),
        "created": created
    }


@router.get("/conversations/{conversation_id}")
async def get_conversation(
    conversation_id: UUID,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    conversation = await services.chat.load_conversation(conversation_id, user.id)
    return ConversationView.for_user(conversation, user.id)


@router.get("/conversations/{conversation_id}/messages")
async def get_messages(
    conversation_id: UUID,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    """Get a page of messages in chronological order."""
    await services.chat.load_conversation(conversation_id, user.id)
    return await services.chat_store.list_messages(
        MessageQuery(conversation_id=conversation_id, limit=limit, offset=offset)
    )


@router.get("/unread-count")
async def unread_count(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    return {"count": await services.chat_store.total_unread(user.id)}


# Export the router
__all__ = ['router']
