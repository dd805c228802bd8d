"""Shared fixtures: in-memory stores wired into the real managers."""

from decimal import Decimal

import pytest
import pytest_asyncio

from api.services import Services
from auth.models import UserRole
from config import validate_settings
from memory import (
    MemoryChatStore,
    MemoryNotificationStore,
    MemoryUserStore,
    MemoryWalletStore
)

TEST_SETTINGS = {
    'db_url': 'postgresql://unused@localhost/nhadat_test',
    'jwt_secret': 'test-jwt-secret',
    'frontend_url': 'http://frontend.test/',
    'vnpay_tmn_code': 'TESTTMN1',
    'vnpay_hash_secret': 'TESTHASHSECRET',
    'vnpay_url': 'https://sandbox.vnpayment.vn/paymentv2/vpcpay.html',
    'vnpay_return_url': 'http://api.test/payments/vnpay/return',
    'cors_origins': 'http://frontend.test'
}


@pytest.fixture
def settings():
    return validate_settings(dict(TEST_SETTINGS))


@pytest.fixture
def users():
    return MemoryUserStore()


@pytest.fixture
def buyer(users):
    return users.add("Nguyễn Văn An", UserRole.BUYER)


@pytest.fixture
def seller(users):
    return users.add("Trần Thị Bình", UserRole.SELLER)


@pytest.fixture
def other_seller(users):
    return users.add("Lê Minh Châu", UserRole.SELLER)


@pytest.fixture
def admin(users):
    return users.add("Quản Trị Viên", UserRole.ADMIN)


@pytest.fixture
def chat_store():
    return MemoryChatStore()


@pytest.fixture
def wallet_store(users):
    return MemoryWalletStore(users)


@pytest.fixture
def notification_store():
    return MemoryNotificationStore()


@pytest_asyncio.fixture
async def services(settings, users, chat_store, wallet_store, notification_store):
    """Real managers and chat engine over in-memory stores."""
    services = Services(settings, users, chat_store, wallet_store, notification_store)
    yield services
    await services.close()


@pytest.fixture
def funded(wallet_store):
    """Give a user a starting balance."""
    def fund(user, amount):
        wallet_store.balances[user.id] = Decimal(amount)
    return fund
