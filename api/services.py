"""Wiring of stores, managers and the gateway client.

Everything is constructed once per application and handed to the routers
through ``app.state.services``.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import Request

from auth import AuthManager, UserStore
from chat import ChatEngine, ChatStore, ConnectionHub, ConversationResolver
from database import close as db_close, init_db
from gateway import VnpayConfig, VnpayGateway
from notifications import NotificationManager, NotificationStore
from wallet import PaymentReconciler, WalletManager, WalletStore

logger = logging.getLogger(__name__)


class Services:
    def __init__(
        self,
        settings: Dict[str, Any],
        users,
        chat_store,
        wallet_store,
        notification_store,
        gateway: Optional[VnpayGateway] = None
    ):
        self.settings = settings
        self.users = users
        self.auth = AuthManager(users, settings['jwt_secret'], settings['jwt_algorithm'])

        self.chat_store = chat_store
        self.hub = ConnectionHub()
        self.resolver = ConversationResolver(chat_store, users)
        self.chat = ChatEngine(self.hub, chat_store, self.resolver, self.auth)

        self.notifications = NotificationManager(notification_store)

        self.wallet = WalletManager(wallet_store)
        self.gateway = gateway or VnpayGateway(VnpayConfig.from_settings(settings))
        self.reconciler = PaymentReconciler(
            wallet_store,
            self.gateway,
            users,
            self.notifications,
            frontend_url=settings['frontend_url'],
            min_amount=settings['topup_min_amount'],
            max_amount=settings['topup_max_amount']
        )

    async def close(self):
        pass


class DatabaseServices(Services):
    """Services backed by the PostgreSQL pool."""

    async def close(self):
        logger.info("Closing database connections...")
        await db_close()


def get_services(request: Request) -> Services:
    """FastAPI dependency returning the application's services."""
    return request.app.state.services


async def build_services(settings: Dict[str, Any]) -> Services:
    logger.info("Initializing database...")
    pool = await init_db(settings['db_url'])
    return DatabaseServices(
        settings,
        users=UserStore(pool),
        chat_store=ChatStore(pool),
        wallet_store=WalletStore(pool),
        notification_store=NotificationStore(pool)
    )
