"""Buyer/seller conversations and their real-time delivery."""

from .db import ChatStore
from .engine import AUTH_FAILED_CLOSE_CODE, ChatEngine
from .hub import Connection, ConnectionHub, conversation_room, user_room
from .models import (
    ChatMessage,
    ClientEvent,
    Conversation,
    ConversationQuery,
    ConversationView,
    MessageQuery,
    ServerEvent,
    StartConversationRequest
)
from .resolver import ConversationResolver, assign_roles

__all__ = [
    'AUTH_FAILED_CLOSE_CODE',
    'ChatEngine',
    'ChatMessage',
    'ChatStore',
    'ClientEvent',
    'Connection',
    'ConnectionHub',
    'Conversation',
    'ConversationQuery',
    'ConversationResolver',
    'ConversationView',
    'MessageQuery',
    'ServerEvent',
    'StartConversationRequest',
    'assign_roles',
    'conversation_room',
    'user_room'
]
