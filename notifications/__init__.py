"""User notifications.

Creation is fire-and-forget: a failure is logged and swallowed so that the
operation which triggered the notification is never aborted by it.
"""

import json
import logging
from typing import Any, List, Optional, Tuple
from uuid import UUID

from errors import NotFoundError
from .db import NotificationStore
from .models import Notification, NotificationQuery

logger = logging.getLogger(__name__)


class NotificationManager:
    def __init__(self, store: NotificationStore):
        self.store = store

    async def create_notification(
        self,
        user_id: UUID,
        type: str,
        title: str,
        message: str,
        listing_id: Optional[UUID] = None,
        metadata: Optional[Any] = None
    ) -> Optional[Notification]:
        """Persist a notification.

        Returns:
            The stored notification, or None if it could not be stored
        """
        try:
            encoded = json.dumps(metadata, default=str) if metadata is not None else None
            return await self.store.insert(user_id, type, title, message, listing_id, encoded)
        except Exception as e:
            logger.error(f"Error creating {type} notification for {user_id}: {e}")
            return None

    async def list_notifications(self, query: NotificationQuery) -> Tuple[List[Notification], int]:
        return await self.store.list(query)

    async def mark_read(self, user_id: UUID, notification_id: UUID):
        if not await self.store.mark_read(user_id, notification_id):
            raise NotFoundError("Không tìm thấy thông báo")

    async def mark_all_read(self, user_id: UUID) -> int:
        return await self.store.mark_all_read(user_id)

    async def unread_count(self, user_id: UUID) -> int:
        return await self.store.unread_count(user_id)

    async def delete(self, user_id: UUID, notification_id: UUID):
        if not await self.store.delete(user_id, notification_id):
            raise NotFoundError("Không tìm thấy thông báo")


__all__ = [
    'Notification',
    'NotificationManager',
    'NotificationQuery',
    'NotificationStore'
]
