"""Tests for the notification manager."""

import json
import uuid

import pytest

from errors import NotFoundError
from memory import BrokenNotificationStore
from notifications import NotificationManager, NotificationQuery


@pytest.fixture
def manager(notification_store):
    return NotificationManager(notification_store)


@pytest.mark.asyncio
async def test_create_notification_encodes_metadata(manager, buyer):
    notification = await manager.create_notification(
        buyer.id,
        "WALLET_TOPUP",
        "Nạp tiền thành công",
        "Bạn đã nạp thành công 50.000 VNĐ vào ví",
        metadata={"orderId": "TOPUP1", "transactionId": uuid.UUID(int=1)}
    )

    assert notification.type == "WALLET_TOPUP"
    assert not notification.is_read
    assert json.loads(notification.metadata) == {
        "orderId": "TOPUP1",
        "transactionId": "00000000-0000-0000-0000-000000000001"
    }


@pytest.mark.asyncio
async def test_create_notification_failure_is_swallowed(buyer):
    manager = NotificationManager(BrokenNotificationStore())
    assert await manager.create_notification(buyer.id, "SYSTEM", "Title", "Body") is None


@pytest.mark.asyncio
async def test_list_unread_and_mark_all(manager, buyer, seller):
    for index in range(3):
        await manager.create_notification(buyer.id, "SYSTEM", f"Thông báo {index}", "Nội dung")
    await manager.create_notification(seller.id, "SYSTEM", "Khác", "Nội dung")

    rows, total = await manager.list_notifications(NotificationQuery(user_id=buyer.id, limit=2))
    assert total == 3
    assert [n.title for n in rows] == ["Thông báo 2", "Thông báo 1"]

    await manager.mark_read(buyer.id, rows[0].id)
    assert await manager.unread_count(buyer.id) == 2

    unread, total = await manager.list_notifications(NotificationQuery(user_id=buyer.id, unread_only=True))
    assert total == 2
    assert rows[0].id not in {n.id for n in unread}

    assert await manager.mark_all_read(buyer.id) == 2
    assert await manager.unread_count(buyer.id) == 0
    assert await manager.unread_count(seller.id) == 1


@pytest.mark.asyncio
async def test_mark_read_and_delete_are_owner_only(manager, notification_store, buyer, seller):
    notification = await manager.create_notification(buyer.id, "SYSTEM", "Riêng tư", "Nội dung")

    with pytest.raises(NotFoundError):
        await manager.mark_read(seller.id, notification.id)
    with pytest.raises(NotFoundError):
        await manager.delete(seller.id, notification.id)
    with pytest.raises(NotFoundError):
        await manager.mark_read(buyer.id, uuid.uuid4())

    await manager.delete(buyer.id, notification.id)
    assert not notification_store.for_user(buyer.id)
