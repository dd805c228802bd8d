import logging
from typing import List, Optional, Tuple
from uuid import UUID

import asyncpg

from database.exceptions import DatabaseError, DuplicateConversationError
from .models import ChatMessage, Conversation, ConversationQuery, MessageQuery

logger = logging.getLogger(__name__)

CONVERSATION_COLUMNS = '''
    id, buyer_id, seller_id, listing_id, last_message, last_message_at,
    unread_count_buyer, unread_count_seller, created_at, updated_at
'''

MESSAGE_COLUMNS = 'id, conversation_id, sender_id, message, is_read, created_at'


def _to_conversation(row) -> Conversation:
    return Conversation(**dict(row))


def _to_message(row) -> ChatMessage:
    return ChatMessage(**dict(row))


async def _lock_conversation(conn, conversation_id: UUID):
    """Take the conversation row lock that orders sends against reads."""
    found = await conn.fetchval(
        'SELECT 1 FROM conversations WHERE id = $1 FOR UPDATE',
        conversation_id
    )
    if not found:
        raise DatabaseError(f"Conversation {conversation_id} does not exist")


class ChatStore:
    """Conversation and message persistence.

    Every method that touches more than one row runs inside a single
    transaction, and counters are only ever changed with in-SQL arithmetic.
    Sends and mark-as-read on one conversation take its row lock first, so
    they never interleave.
    """

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def get_listing_owner(self, listing_id: UUID) -> Optional[UUID]:
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetchval(
                    'SELECT seller_id FROM listings WHERE id = $1',
                    listing_id
                )
        except asyncpg.PostgresError as e:
            logger.error(f"Error loading listing {listing_id}: {e}")
            raise DatabaseError(f"Failed to load listing: {str(e)}")

    async def get_conversation(self, conversation_id: UUID) -> Optional[Conversation]:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f'SELECT {CONVERSATION_COLUMNS} FROM conversations WHERE id = $1',
                    conversation_id
                )
        except asyncpg.PostgresError as e:
            logger.error(f"Error loading conversation {conversation_id}: {e}")
            raise DatabaseError(f"Failed to load conversation: {str(e)}")
        return _to_conversation(row) if row else None

    async def find_conversation_by_pair(self, first_id: UUID, second_id: UUID) -> Optional[Conversation]:
        """Find the conversation between two users regardless of who is buyer."""
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f'''
                    SELECT {CONVERSATION_COLUMNS}
                    FROM conversations
                    WHERE LEAST(buyer_id, seller_id) = LEAST($1::UUID, $2::UUID)
                    AND GREATEST(buyer_id, seller_id) = GREATEST($1::UUID, $2::UUID)
                    ''',
                    first_id,
                    second_id
                )
        except asyncpg.PostgresError as e:
            logger.error(f"Error looking up conversation {first_id}/{second_id}: {e}")
            raise DatabaseError(f"Failed to look up conversation: {str(e)}")
        return _to_conversation(row) if row else None

    async def create_conversation(
        self,
        buyer_id: UUID,
        seller_id: UUID,
        listing_id: Optional[UUID] = None
    ) -> Conversation:
        """Insert a conversation row.

        Raises:
            DuplicateConversationError: If the pair already has a conversation
        """
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f'''
                    INSERT INTO conversations (buyer_id, seller_id, listing_id)
                    VALUES ($1, $2, $3)
                    RETURNING {CONVERSATION_COLUMNS}
                    ''',
                    buyer_id,
                    seller_id,
                    listing_id
                )
        except asyncpg.UniqueViolationError:
            raise DuplicateConversationError(
                f"Conversation already exists for {buyer_id}/{seller_id}"
            )
        except asyncpg.PostgresError as e:
            logger.error(f"Error creating conversation: {e}")
            raise DatabaseError(f"Failed to create conversation: {str(e)}")
        return _to_conversation(row)

    async def set_conversation_listing(self, conversation_id: UUID, listing_id: UUID) -> Conversation:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f'''
                    UPDATE conversations
                    SET listing_id = $2, updated_at = now()
                    WHERE id = $1
                    RETURNING {CONVERSATION_COLUMNS}
                    ''',
                    conversation_id,
                    listing_id
                )
        except asyncpg.PostgresError as e:
            logger.error(f"Error updating listing of conversation {conversation_id}: {e}")
            raise DatabaseError(f"Failed to update conversation: {str(e)}")
        if not row:
            raise DatabaseError(f"Conversation {conversation_id} disappeared during update")
        return _to_conversation(row)

    async def list_conversations(self, query: ConversationQuery) -> List[Conversation]:
        sql = f'''
            SELECT {CONVERSATION_COLUMNS}
            FROM conversations
            WHERE (buyer_id = $1 OR seller_id = $1)
        '''
        params = [query.participant_id]

        if query.with_messages_only:
            sql += ' AND last_message IS NOT NULL'

        sql += ' ORDER BY last_message_at DESC NULLS LAST, created_at DESC'

        if query.limit is not None:
            params.append(query.limit)
            sql += f' LIMIT ${len(params)}'
        params.append(query.offset)
        sql += f' OFFSET ${len(params)}'

        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(sql, *params)
        except asyncpg.PostgresError as e:
            logger.error(f"Error listing conversations for {query.participant_id}: {e}")
            raise DatabaseError(f"Failed to list conversations: {str(e)}")
        return [_to_conversation(row) for row in rows]

    async def append_message(
        self,
        conversation_id: UUID,
        sender_id: UUID,
        text: str
    ) -> Tuple[ChatMessage, Conversation]:
        """Persist a message and bump the receiving side's unread counter.

        The insert, the last-message fields and the counter move together or
        not at all.
        """
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    await _lock_conversation(conn, conversation_id)
                    message_row = await conn.fetchrow(
                        f'''
                        INSERT INTO chat_messages (conversation_id, sender_id, message, is_read)
                        VALUES ($1, $2, $3, false)
                        RETURNING {MESSAGE_COLUMNS}
                        ''',
                        conversation_id,
                        sender_id,
                        text
                    )
                    conversation_row = await conn.fetchrow(
                        f'''
                        UPDATE conversations
                        SET
                            last_message = $3,
                            last_message_at = $4,
                            unread_count_buyer = unread_count_buyer
                                + CASE WHEN seller_id = $2 THEN 1 ELSE 0 END,
                            unread_count_seller = unread_count_seller
                                + CASE WHEN buyer_id = $2 THEN 1 ELSE 0 END,
                            updated_at = now()
                        WHERE id = $1
                        RETURNING {CONVERSATION_COLUMNS}
                        ''',
                        conversation_id,
                        sender_id,
                        text,
                        message_row['created_at']
                    )
        except asyncpg.PostgresError as e:
            logger.error(f"Error appending message to {conversation_id}: {e}")
            raise DatabaseError(f"Failed to save message: {str(e)}")

        if not conversation_row:
            raise DatabaseError(f"Conversation {conversation_id} disappeared during update")
        return _to_message(message_row), _to_conversation(conversation_row)

    async def mark_read(self, conversation_id: UUID, reader_id: UUID) -> Tuple[int, Conversation]:
        """Mark the other side's messages read and zero the reader's counter.

        Returns:
            Number of messages flipped and the updated conversation
        """
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    await _lock_conversation(conn, conversation_id)
                    result = await conn.execute(
                        '''
                        UPDATE chat_messages
                        SET is_read = true
                        WHERE conversation_id = $1
                        AND sender_id <> $2
                        AND NOT is_read
                        ''',
                        conversation_id,
                        reader_id
                    )
                    row = await conn.fetchrow(
                        f'''
                        UPDATE conversations
                        SET
                            unread_count_buyer = CASE WHEN buyer_id = $2 THEN 0 ELSE unread_count_buyer END,
                            unread_count_seller = CASE WHEN seller_id = $2 THEN 0 ELSE unread_count_seller END,
                            updated_at = now()
                        WHERE id = $1
                        RETURNING {CONVERSATION_COLUMNS}
                        ''',
                        conversation_id,
                        reader_id
                    )
        except asyncpg.PostgresError as e:
            logger.error(f"Error marking {conversation_id} read: {e}")
            raise DatabaseError(f"Failed to mark messages read: {str(e)}")

        if not row:
            raise DatabaseError(f"Conversation {conversation_id} disappeared during update")

        # execute() returns a status string such as "UPDATE 3"
        updated = int(result.split()[-1]) if result else 0
        return updated, _to_conversation(row)

    async def list_messages(self, query: MessageQuery) -> List[ChatMessage]:
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    f'''
                    SELECT {MESSAGE_COLUMNS}
                    FROM chat_messages
                    WHERE conversation_id = $1
                    ORDER BY created_at DESC
                    LIMIT $2 OFFSET $3
                    ''',
                    query.conversation_id,
                    query.limit,
                    query.offset
                )
        except asyncpg.PostgresError as e:
            logger.error(f"Error listing messages of {query.conversation_id}: {e}")
            raise DatabaseError(f"Failed to list messages: {str(e)}")
        return [_to_message(row) for row in reversed(rows)]

    async def total_unread(self, user_id: UUID) -> int:
        try:
            async with self.pool.acquire() as conn:
                total = await conn.fetchval(
                    '''
                    SELECT COALESCE(SUM(
                        CASE WHEN buyer_id = $1 THEN unread_count_buyer ELSE unread_count_seller END
                    ), 0)
                    FROM conversations
                    WHERE buyer_id = $1 OR seller_id = $1
                    ''',
                    user_id
                )
        except asyncpg.PostgresError as e:
            logger.error(f"Error counting unread messages for {user_id}: {e}")
            raise DatabaseError(f"Failed to count unread messages: {str(e)}")
        return int(total)
