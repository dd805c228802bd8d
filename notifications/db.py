import logging
from typing import List, Optional, Tuple
from uuid import UUID

import asyncpg

from database.exceptions import DatabaseError
from .models import Notification, NotificationQuery

logger = logging.getLogger(__name__)

NOTIFICATION_COLUMNS = 'id, user_id, type, title, message, listing_id, metadata, is_read, created_at'


def _status_count(status: str) -> int:
    # asyncpg returns command tags such as "UPDATE 3" or "DELETE 1"
    return int(status.split()[-1]) if status else 0


class NotificationStore:
    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def insert(
        self,
        user_id: UUID,
        type: str,
        title: str,
        message: str,
        listing_id: Optional[UUID] = None,
        metadata: Optional[str] = None
    ) -> Notification:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f'''
                    INSERT INTO notifications (user_id, type, title, message, listing_id, metadata)
                    VALUES ($1, $2, $3, $4, $5, $6)
                    RETURNING {NOTIFICATION_COLUMNS}
                    ''',
                    user_id,
                    type,
                    title,
                    message,
                    listing_id,
                    metadata
                )
        except asyncpg.PostgresError as e:
            raise DatabaseError(f"Failed to create notification: {str(e)}")
        return Notification(**dict(row))

    async def list(self, query: NotificationQuery) -> Tuple[List[Notification], int]:
        where = 'user_id = $1'
        if query.unread_only:
            where += ' AND NOT is_read'

        try:
            async with self.pool.acquire() as conn:
                total = await conn.fetchval(
                    f'SELECT COUNT(*) FROM notifications WHERE {where}',
                    query.user_id
                )
                rows = await conn.fetch(
                    f'''
                    SELECT {NOTIFICATION_COLUMNS}
                    FROM notifications
                    WHERE {where}
                    ORDER BY created_at DESC
                    LIMIT $2 OFFSET $3
                    ''',
                    query.user_id,
                    query.limit,
                    query.offset
                )
        except asyncpg.PostgresError as e:
            logger.error(f"Error listing notifications of {query.user_id}: {e}")
            raise DatabaseError(f"Failed to list notifications: {str(e)}")
        return [Notification(**dict(row)) for row in rows], int(total)

    async def mark_read(self, user_id: UUID, notification_id: UUID) -> bool:
        try:
            async with self.pool.acquire() as conn:
                status = await conn.execute(
                    'UPDATE notifications SET is_read = true WHERE id = $1 AND user_id = $2',
                    notification_id,
                    user_id
                )
        except asyncpg.PostgresError as e:
            logger.error(f"Error marking notification {notification_id} read: {e}")
            raise DatabaseError(f"Failed to update notification: {str(e)}")
        return _status_count(status) > 0

    async def mark_all_read(self, user_id: UUID) -> int:
        try:
            async with self.pool.acquire() as conn:
                status = await conn.execute(
                    'UPDATE notifications SET is_read = true WHERE user_id = $1 AND NOT is_read',
                    user_id
                )
        except asyncpg.PostgresError as e:
            logger.error(f"Error marking notifications of {user_id} read: {e}")
            raise DatabaseError(f"Failed to update notifications: {str(e)}")
        return _status_count(status)

    async def unread_count(self, user_id: UUID) -> int:
        try:
            async with self.pool.acquire() as conn:
                count = await conn.fetchval(
                    'SELECT COUNT(*) FROM notifications WHERE user_id = $1 AND NOT is_read',
                    user_id
                )
        except asyncpg.PostgresError as e:
            logger.error(f"Error counting notifications of {user_id}: {e}")
            raise DatabaseError(f"Failed to count notifications: {str(e)}")
        return int(count)

    async def delete(self, user_id: UUID, notification_id: UUID) -> bool:
        try:
            async with self.pool.acquire() as conn:
                status = await conn.execute(
                    'DELETE FROM notifications WHERE id = $1 AND user_id = $2',
                    notification_id,
                    user_id
                )
        except asyncpg.PostgresError as e:
            logger.error(f"Error deleting notification {notification_id}: {e}")
            raise DatabaseError(f"Failed to delete notification: {str(e)}")
        return _status_count(status) > 0
