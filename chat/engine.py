"""Real-time chat engine.

Each WebSocket connection authenticates once, joins its owner's inbox room
and then sends events that are dispatched through a handler table. Handlers
for one connection run one at a time from that connection's receive loop;
anything shared between connections is serialized by the store.
"""

import logging
from typing import Awaitable, Callable, Dict, Optional, Tuple
from uuid import UUID

from fastapi import WebSocket
from pydantic import ValidationError

from auth import AuthError, AuthManager
from auth.models import User
from errors import InvalidArgumentError, MarketplaceError, NotFoundError, UnauthorizedError
from .hub import Connection, ConnectionHub, conversation_room, user_room
from .models import (
    ChatMessage,
    ClientEvent,
    Conversation,
    ConversationQuery,
    ConversationRef,
    SendMessageData,
    ServerEvent,
    WebSocketMessage
)
from .resolver import ConversationResolver

logger = logging.getLogger(__name__)

# Close code sent when a socket fails authentication
AUTH_FAILED_CLOSE_CODE = 4001

Handler = Callable[[Connection, dict], Awaitable[None]]


class ChatEngine:
    def __init__(
        self,
        hub: ConnectionHub,
        chat_store,
        resolver: ConversationResolver,
        auth: AuthManager
    ):
        self.hub = hub
        self.chat_store = chat_store
        self.resolver = resolver
        self.auth = auth
        self.handlers: Dict[str, Handler] = {
            ClientEvent.JOIN_CONVERSATIONS.value: self.join_conversations,
            ClientEvent.SEND_MESSAGE.value: self.send_message,
            ClientEvent.MARK_AS_READ.value: self.mark_as_read,
            ClientEvent.TYPING.value: self.typing,
            ClientEvent.STOP_TYPING.value: self.stop_typing,
        }

    async def connect(self, websocket: WebSocket, token: Optional[str]) -> Optional[Connection]:
        """Authenticate an accepted socket and enrol it in its owner's inbox.

        Returns:
            The live connection, or None if the socket was closed
        """
        try:
            user = await self.auth.authenticate(token)
        except AuthError as e:
            logger.info(f"Rejecting chat connection: {e}")
            await websocket.close(code=AUTH_FAILED_CLOSE_CODE, reason=str(e))
            return None

        connection = self.hub.register(websocket, user)
        logger.info(f"User {user.full_name} ({user.id}) connected as {connection.id}")
        await self.hub.broadcast(ServerEvent.USER_ONLINE.value, {"userId": user.id})
        return connection

    async def disconnect(self, connection: Connection):
        self.hub.unregister(connection)
        logger.info(f"User {connection.user.full_name} ({connection.user.id}) disconnected")
        await self.hub.broadcast(ServerEvent.USER_OFFLINE.value, {"userId": connection.user.id})

    async def handle_message(self, connection: Connection, raw) -> None:
        """Dispatch one client event, reporting any failure back to the sender."""
        try:
            message = WebSocketMessage.model_validate(raw)
        except ValidationError:
            await self._send_error(connection, "Malformed event")
            return

        handler = self.handlers.get(message.type)
        if handler is None:
            await self._send_error(connection, f"Unknown event: {message.type}")
            return

        try:
            await handler(connection, message.data)
        except ValidationError as e:
            logger.info(f"Invalid {message.type} payload from {connection.user.id}: {e}")
            await self._send_error(connection, f"Invalid {message.type} payload")
        except MarketplaceError as e:
            logger.info(f"{message.type} rejected for {connection.user.id}: {e}")
            await self._send_error(connection, str(e))
        except Exception as e:
            logger.error(f"Error handling {message.type} for {connection.user.id}: {e}")
            await self._send_error(connection, f"Failed to process {message.type}")

    async def join_conversations(self, connection: Connection, data: dict):
        conversations = await self.chat_store.list_conversations(
            ConversationQuery(participant_id=connection.user.id)
        )
        for conversation in conversations:
            self.hub.join(connection, conversation_room(conversation.id))

        await self.hub.send(
            connection,
            ServerEvent.CONVERSATIONS_JOINED.value,
            {"conversationIds": [conversation.id for conversation in conversations]}
        )

    async def send_message(self, connection: Connection, data: dict):
        request = SendMessageData.model_validate(data)
        user = connection.user

        if request.conversation_id:
            conversation = await self.load_conversation(request.conversation_id, user.id)
            created = False
        else:
            if not request.receiver_id:
                raise InvalidArgumentError("receiverId is required to start a conversation")
            conversation, created = await self.resolver.resolve(
                user.id, request.receiver_id, request.property_id
            )

        message, conversation = await self.chat_store.append_message(
            conversation.id, user.id, request.message
        )
        await self.deliver(user, conversation, message, created)

    async def mark_as_read(self, connection: Connection, data: dict):
        ref = ConversationRef.model_validate(data)
        user = connection.user
        await self.load_conversation(ref.conversation_id, user.id)

        updated, _ = await self.chat_store.mark_read(ref.conversation_id, user.id)
        logger.debug(f"User {user.id} read {updated} messages in {ref.conversation_id}")

        await self.hub.publish(
            conversation_room(ref.conversation_id),
            ServerEvent.MESSAGES_READ.value,
            {"conversationId": ref.conversation_id, "readBy": user.id},
            exclude_user=user.id
        )

    async def typing(self, connection: Connection, data: dict):
        ref = ConversationRef.model_validate(data)
        await self._relay_typing(
            connection,
            ref.conversation_id,
            ServerEvent.USER_TYPING,
            {
                "conversationId": ref.conversation_id,
                "userId": connection.user.id,
                "userName": connection.user.full_name
            }
        )

    async def stop_typing(self, connection: Connection, data: dict):
        ref = ConversationRef.model_validate(data)
        await self._relay_typing(
            connection,
            ref.conversation_id,
            ServerEvent.USER_STOP_TYPING,
            {"conversationId": ref.conversation_id, "userId": connection.user.id}
        )

    async def start_conversation(
        self,
        user: User,
        receiver_id: UUID,
        listing_id: Optional[UUID] = None,
        initial_message: Optional[str] = None
    ) -> Tuple[Conversation, bool]:
        """Resolve a conversation outside a socket, optionally opening it with a message."""
        conversation, created = await self.resolver.resolve(user.id, receiver_id, listing_id)

        if initial_message and initial_message.strip():
            message, conversation = await self.chat_store.append_message(
                conversation.id, user.id, initial_message
            )
            await self.deliver(user, conversation, message, created)
        elif created:
            self._join_sessions(user.id, conversation.id)
            await self._announce_conversation(conversation, conversation.counterpart_of(user.id))

        return conversation, created

    async def deliver(self, sender: User, conversation: Conversation, message: ChatMessage, created: bool):
        """Fan a stored message out to the conversation room and the receiver's inbox."""
        receiver_id = conversation.counterpart_of(sender.id)

        if created:
            self._join_sessions(sender.id, conversation.id)

        await self.hub.publish(
            conversation_room(conversation.id),
            ServerEvent.NEW_MESSAGE.value,
            {"conversationId": conversation.id, "message": message}
        )
        await self.hub.publish(
            user_room(receiver_id),
            ServerEvent.MESSAGE_NOTIFICATION.value,
            {
                "conversationId": conversation.id,
                "message": message,
                "sender": sender.public_profile()
            }
        )

        if created:
            await self._announce_conversation(conversation, receiver_id)

    async def _announce_conversation(self, conversation: Conversation, receiver_id: UUID):
        await self.hub.publish(
            user_room(receiver_id),
            ServerEvent.NEW_CONVERSATION.value,
            conversation
        )

    def _join_sessions(self, user_id: UUID, conversation_id: UUID):
        room = conversation_room(conversation_id)
        for connection in self.hub.members(user_room(user_id)):
            self.hub.join(connection, room)

    async def _relay_typing(self, connection: Connection, conversation_id: UUID, event: ServerEvent, payload: dict):
        room = conversation_room(conversation_id)
        if not self.hub.is_member(connection, room):
            return
        await self.hub.publish(room, event.value, payload, exclude_connection=connection)

    async def load_conversation(self, conversation_id: UUID, user_id: UUID) -> Conversation:
        conversation = await self.chat_store.get_conversation(conversation_id)
        if not conversation:
            raise NotFoundError("Conversation not found")
        if not conversation.is_participant(user_id):
            raise UnauthorizedError("Unauthorized")
        return conversation

    async def _send_error(self, connection: Connection, message: str):
        await self.hub.send(connection, ServerEvent.ERROR.value, {"message": message})
