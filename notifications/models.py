from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class Notification(BaseModel):
    id: UUID
    user_id: UUID
    type: str
    title: str
    message: str
    listing_id: Optional[UUID] = None
    metadata: Optional[str] = None
    is_read: bool = False
    created_at: datetime


class NotificationQuery(BaseModel):
    user_id: UUID
    unread_only: bool = False
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit
