from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ClientEvent(str, Enum):
    JOIN_CONVERSATIONS = "join-conversations"
    SEND_MESSAGE = "send-message"
    MARK_AS_READ = "mark-as-read"
    TYPING = "typing"
    STOP_TYPING = "stop-typing"


class ServerEvent(str, Enum):
    CONVERSATIONS_JOINED = "conversations-joined"
    NEW_MESSAGE = "new-message"
    NEW_CONVERSATION = "new-conversation"
    MESSAGE_NOTIFICATION = "message-notification"
    MESSAGES_READ = "messages-read"
    USER_TYPING = "user-typing"
    USER_STOP_TYPING = "user-stop-typing"
    USER_ONLINE = "user-online"
    USER_OFFLINE = "user-offline"
    ERROR = "error"


class Conversation(BaseModel):
    id: UUID
    buyer_id: UUID
    seller_id: UUID
    listing_id: Optional[UUID] = None
    last_message: Optional[str] = None
    last_message_at: Optional[datetime] = None
    unread_count_buyer: int = 0
    unread_count_seller: int = 0
    created_at: datetime
    updated_at: Optional[datetime] = None

    def is_participant(self, user_id: UUID) -> bool:
        return user_id in (self.buyer_id, self.seller_id)

    def counterpart_of(self, user_id: UUID) -> UUID:
        return self.seller_id if user_id == self.buyer_id else self.buyer_id

    def unread_count_for(self, user_id: UUID) -> int:
        """Unread count as seen by one participant."""
        return self.unread_count_buyer if user_id == self.buyer_id else self.unread_count_seller


class ChatMessage(BaseModel):
    id: UUID
    conversation_id: UUID
    sender_id: UUID
    message: str
    is_read: bool = False
    created_at: datetime


class ConversationView(BaseModel):
    """A conversation from the point of view of one participant."""
    id: UUID
    other_user_id: UUID
    listing_id: Optional[UUID] = None
    last_message: Optional[str] = None
    last_message_at: Optional[datetime] = None
    unread_count: int
    is_buyer: bool
    created_at: datetime

    @classmethod
    def for_user(cls, conversation: Conversation, user_id: UUID) -> "ConversationView":
        return cls(
            id=conversation.id,
            other_user_id=conversation.counterpart_of(user_id),
            listing_id=conversation.listing_id,
            last_message=conversation.last_message,
            last_message_at=conversation.last_message_at,
            unread_count=conversation.unread_count_for(user_id),
            is_buyer=conversation.buyer_id == user_id,
            created_at=conversation.created_at
        )


class ConversationQuery(BaseModel):
    """Filter for listing a user's conversations.

    Attributes:
        participant_id: User that must be the buyer or the seller
        with_messages_only: Skip conversations nobody has written in yet
        limit: Maximum rows, None for all of them
        offset: Rows to skip
    """
    participant_id: UUID
    with_messages_only: bool = False
    limit: Optional[int] = Field(default=None, ge=1)
    offset: int = Field(default=0, ge=0)


class MessageQuery(BaseModel):
    """Page of messages in a conversation, newest page first, returned oldest first."""
    conversation_id: UUID
    limit: int = Field(default=50, ge=1, le=200)
    offset: int = Field(default=0, ge=0)


class WebSocketMessage(BaseModel):
    type: str
    data: dict = Field(default_factory=dict)


class SendMessageData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: Optional[UUID] = Field(default=None, alias="conversationId")
    receiver_id: Optional[UUID] = Field(default=None, alias="receiverId")
    message: str
    property_id: Optional[UUID] = Field(default=None, alias="propertyId")

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Message must not be empty")
        return value


class ConversationRef(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: UUID = Field(alias="conversationId")


class StartConversationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    receiver_id: UUID = Field(alias="receiverId")
    property_id: Optional[UUID] = Field(default=None, alias="propertyId")
    initial_message: Optional[str] = Field(default=None, alias="initialMessage")
