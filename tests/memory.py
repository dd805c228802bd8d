"""In-memory stand-ins for the asyncpg stores.

They expose the same methods as the real stores so managers, the chat
engine and the API can be exercised without a database. Conditional
updates keep the same semantics as their SQL counterparts.
"""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from auth.models import User, UserRole
from chat.models import ChatMessage, Conversation
from database.exceptions import DatabaseError, DuplicateConversationError
from errors import NotFoundError
from notifications.models import Notification
from wallet.exceptions import InsufficientBalanceError
from wallet.models import TransactionStatus, WalletTransaction


class _Clock:
    """Strictly increasing timestamps so ordering is deterministic."""

    def __init__(self):
        self.current = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        self.current += timedelta(milliseconds=1)
        return self.current


def _pair(first_id, second_id):
    return frozenset((first_id, second_id))


class MemoryUserStore:
    def __init__(self):
        self.users: Dict[uuid.UUID, User] = {}

    def add(self, full_name: str, role: UserRole = UserRole.BUYER, balance: Decimal = Decimal("0")) -> User:
        user = User(
            id=uuid.uuid4(),
            email=f"{full_name.split()[0].lower()}-{len(self.users)}@example.vn",
            full_name=full_name,
            phone="0901234567",
            role=role,
            balance=balance
        )
        self.users[user.id] = user
        return user

    async def get_user(self, user_id):
        return self.users.get(user_id)


class MemoryChatStore:
    def __init__(self):
        self.clock = _Clock()
        self.listings: Dict[uuid.UUID, uuid.UUID] = {}
        self.conversations: Dict[uuid.UUID, Conversation] = {}
        self.messages: List[ChatMessage] = []
        self.create_calls = 0

    def add_listing(self, seller_id) -> uuid.UUID:
        listing_id = uuid.uuid4()
        self.listings[listing_id] = seller_id
        return listing_id

    async def get_listing_owner(self, listing_id):
        return self.listings.get(listing_id)

    async def get_conversation(self, conversation_id):
        conversation = self.conversations.get(conversation_id)
        return conversation.model_copy() if conversation else None

    async def find_conversation_by_pair(self, first_id, second_id):
        for conversation in self.conversations.values():
            if _pair(conversation.buyer_id, conversation.seller_id) == _pair(first_id, second_id):
                return conversation.model_copy()
        return None

    async def create_conversation(self, buyer_id, seller_id, listing_id=None):
        self.create_calls += 1
        # Let a concurrent creator run between the caller's lookup and this insert
        await asyncio.sleep(0)
        for conversation in self.conversations.values():
            if _pair(conversation.buyer_id, conversation.seller_id) == _pair(buyer_id, seller_id):
                raise DuplicateConversationError(f"Conversation already exists for {buyer_id}/{seller_id}")

        conversation = Conversation(
            id=uuid.uuid4(),
            buyer_id=buyer_id,
            seller_id=seller_id,
            listing_id=listing_id,
            created_at=self.clock.now()
        )
        self.conversations[conversation.id] = conversation
        return conversation.model_copy()

    async def set_conversation_listing(self, conversation_id, listing_id):
        conversation = self.conversations[conversation_id]
        conversation.listing_id = listing_id
        conversation.updated_at = self.clock.now()
        return conversation.model_copy()

    async def list_conversations(self, query):
        rows = [
            conversation for conversation in self.conversations.values()
            if conversation.is_participant(query.participant_id)
            and (not query.with_messages_only or conversation.last_message is not None)
        ]
        rows.sort(
            key=lambda c: (c.last_message_at or datetime.min.replace(tzinfo=timezone.utc), c.created_at),
            reverse=True
        )
        rows = rows[query.offset:]
        if query.limit is not None:
            rows = rows[:query.limit]
        return [conversation.model_copy() for conversation in rows]

    async def append_message(self, conversation_id, sender_id, text):
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            raise DatabaseError(f"Conversation {conversation_id} does not exist")

        message = ChatMessage(
            id=uuid.uuid4(),
            conversation_id=conversation_id,
            sender_id=sender_id,
            message=text,
            is_read=False,
            created_at=self.clock.now()
        )
        self.messages.append(message)

        conversation.last_message = text
        conversation.last_message_at = message.created_at
        if sender_id == conversation.seller_id:
            conversation.unread_count_buyer += 1
        if sender_id == conversation.buyer_id:
            conversation.unread_count_seller += 1
        return message.model_copy(), conversation.model_copy()

    async def mark_read(self, conversation_id, reader_id):
        updated = 0
        for message in self.messages:
            if message.conversation_id == conversation_id and message.sender_id != reader_id and not message.is_read:
                message.is_read = True
                updated += 1

        conversation = self.conversations[conversation_id]
        if reader_id == conversation.buyer_id:
            conversation.unread_count_buyer = 0
        if reader_id == conversation.seller_id:
            conversation.unread_count_seller = 0
        return updated, conversation.model_copy()

    async def list_messages(self, query):
        rows = [m for m in self.messages if m.conversation_id == query.conversation_id]
        rows.sort(key=lambda m: m.created_at, reverse=True)
        page = rows[query.offset:query.offset + query.limit]
        return [message.model_copy() for message in reversed(page)]

    async def total_unread(self, user_id):
        return sum(
            conversation.unread_count_for(user_id)
            for conversation in self.conversations.values()
            if conversation.is_participant(user_id)
        )


class MemoryWalletStore:
    def __init__(self, users: MemoryUserStore):
        self.clock = _Clock()
        self.users = users
        self.balances: Dict[uuid.UUID, Decimal] = {}
        self.transactions: Dict[uuid.UUID, WalletTransaction] = {}

    async def get_balance(self, user_id):
        if user_id not in self.users.users:
            return None
        return self.balances.get(user_id, Decimal("0"))

    def _insert(self, user_id, amount, type, status, description, reference_id=None, listing_id=None):
        transaction = WalletTransaction(
            id=uuid.uuid4(),
            user_id=user_id,
            amount=Decimal(amount),
            type=type,
            status=status,
            description=description,
            reference_id=reference_id,
            listing_id=listing_id,
            created_at=self.clock.now()
        )
        self.transactions[transaction.id] = transaction
        return transaction

    async def create_transaction(
        self,
        user_id,
        amount,
        type,
        status=TransactionStatus.PENDING,
        description=None,
        reference_id=None,
        listing_id=None
    ):
        if reference_id and any(t.reference_id == reference_id for t in self.transactions.values()):
            raise DatabaseError(f"Duplicate reference {reference_id}")
        return self._insert(user_id, amount, type, status, description, reference_id, listing_id).model_copy()

    async def get_transaction(self, transaction_id):
        transaction = self.transactions.get(transaction_id)
        return transaction.model_copy() if transaction else None

    async def get_transaction_by_reference(self, reference_id):
        for transaction in self.transactions.values():
            if transaction.reference_id == reference_id:
                return transaction.model_copy()
        return None

    async def list_transactions(self, query):
        rows = [
            t for t in self.transactions.values()
            if t.user_id == query.user_id
            and (query.type is None or t.type == query.type)
            and (query.status is None or t.status == query.status)
        ]
        rows.sort(key=lambda t: t.created_at, reverse=True)
        return [t.model_copy() for t in rows[query.offset:query.offset + query.limit]], len(rows)

    async def apply_balance_change(self, user_id, delta, type, status, description, listing_id=None):
        if user_id not in self.users.users:
            raise NotFoundError(f"User {user_id} not found")
        balance = self.balances.get(user_id, Decimal("0")) + Decimal(delta)
        if balance < 0:
            raise InsufficientBalanceError("Insufficient balance")
        self.balances[user_id] = balance
        transaction = self._insert(user_id, delta, type, status, description, listing_id=listing_id)
        return transaction.model_copy(), balance

    async def complete_pending(self, transaction_id, description=None, credit=True):
        transaction = self.transactions.get(transaction_id)
        if transaction is None or transaction.status != TransactionStatus.PENDING:
            return None
        transaction.status = TransactionStatus.COMPLETED
        if description is not None:
            transaction.description = description
        if credit:
            self.balances[transaction.user_id] = (
                self.balances.get(transaction.user_id, Decimal("0")) + transaction.amount
            )
        return transaction.model_copy()

    async def close_pending(self, transaction_id, status, description=None):
        transaction = self.transactions.get(transaction_id)
        if transaction is None or transaction.status != TransactionStatus.PENDING:
            return None
        transaction.status = status
        if description is not None:
            transaction.description = description
        return transaction.model_copy()


class MemoryNotificationStore:
    def __init__(self):
        self.clock = _Clock()
        self.notifications: Dict[uuid.UUID, Notification] = {}

    async def insert(self, user_id, type, title, message, listing_id=None, metadata=None):
        notification = Notification(
            id=uuid.uuid4(),
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            listing_id=listing_id,
            metadata=metadata,
            created_at=self.clock.now()
        )
        self.notifications[notification.id] = notification
        return notification

    def for_user(self, user_id) -> List[Notification]:
        return [n for n in self.notifications.values() if n.user_id == user_id]

    async def list(self, query):
        rows = [n for n in self.for_user(query.user_id) if not query.unread_only or not n.is_read]
        rows.sort(key=lambda n: n.created_at, reverse=True)
        return rows[query.offset:query.offset + query.limit], len(rows)

    async def mark_read(self, user_id, notification_id):
        notification = self.notifications.get(notification_id)
        if notification is None or notification.user_id != user_id:
            return False
        notification.is_read = True
        return True

    async def mark_all_read(self, user_id):
        unread = [n for n in self.for_user(user_id) if not n.is_read]
        for notification in unread:
            notification.is_read = True
        return len(unread)

    async def unread_count(self, user_id):
        return len([n for n in self.for_user(user_id) if not n.is_read])

    async def delete(self, user_id, notification_id):
        notification = self.notifications.get(notification_id)
        if notification is None or notification.user_id != user_id:
            return False
        del self.notifications[notification_id]
        return True


class BrokenNotificationStore(MemoryNotificationStore):
    async def insert(self, *args, **kwargs):
        raise DatabaseError("notifications table is unavailable")


class FakeWebSocket:
    """Records what the engine sends and how it closes the socket."""

    def __init__(self, fail_on_send: bool = False):
        self.sent: List[dict] = []
        self.closed_with: Optional[int] = None
        self.fail_on_send = fail_on_send

    async def send_json(self, data):
        if self.fail_on_send:
            raise RuntimeError("socket is closed")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: Optional[str] = None):
        self.closed_with = code

    def events(self, event_type: Optional[str] = None) -> List[dict]:
        return [m for m in self.sent if event_type is None or m["type"] == event_type]

    def clear(self):
        self.sent.clear()
