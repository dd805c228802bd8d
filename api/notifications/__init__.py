"""Notifications API endpoints."""

import math
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from auth import get_current_user
from auth.models import User
from notifications import NotificationQuery
from ..services import Services, get_services

router = APIRouter(
    prefix="/notifications",
    tags=["Notifications"]
)


@router.get("")
async def get_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = Query(False, alias="unreadOnly"),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    notifications, total = await services.notifications.list_notifications(
        NotificationQuery(user_id=user.id, unread_only=unread_only, page=page, limit=limit)
    )
    return {
        "data": notifications,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit)
        }
    }


@router.get("/unread-count")
async def get_unread_count(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    return {"count": await services.notifications.unread_count(user.id)}


@router.put("/read-all")
async def mark_all_read(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    return {"updated": await services.notifications.mark_all_read(user.id)}


@router.put("/{notification_id}/read")
async def mark_read(
    notification_id: UUID,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    await services.notifications.mark_read(user.id, notification_id)
    return {"status": "ok"}


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: UUID,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    await services.notifications.delete(user.id, notification_id)
    return {"status": "ok"}


__all__ = ['router']
