"""REST and WebSocket API for the marketplace.

This module provides HTTP endpoints for:
- Buyer/seller chat over WebSocket plus conversation history
- Wallet balance, history and withdrawals
- VNPay top-ups and their return/IPN callbacks
- Notifications
- Wallet administration
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import load_settings_conf
from errors import MarketplaceError
from .services import Services, build_services

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


def create_app(settings: Optional[Dict[str, Any]] = None, services: Optional[Services] = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Validated settings, loaded from settings.conf when omitted
        services: Prebuilt services; when omitted they are built against the
            database on startup and closed on shutdown
    """
    if services is not None:
        settings = services.settings
    elif settings is None:
        settings = load_settings_conf()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handle startup and shutdown events."""
        logger.info("Initializing API...")
        owned = None
        if getattr(app.state, 'services', None) is None:
            owned = await build_services(settings)
            app.state.services = owned

        yield

        logger.info("Shutting down API...")
        if owned is not None:
            await owned.close()
            app.state.services = None

    app = FastAPI(
        title="Nha Dat Marketplace API",
        description="Chat and wallet API for the Nha Dat real-estate marketplace",
        version=API_VERSION,
        lifespan=lifespan
    )
    app.state.services = services

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings['cors_origins'],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(MarketplaceError)
    async def marketplace_error_handler(request: Request, exc: MarketplaceError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})

    @app.get("/")
    async def root():
        return {
            "name": "Nha Dat Marketplace API",
            "version": API_VERSION,
            "status": "running"
        }

    from .chat import router as chat_router
    from .notifications import router as notifications_router
    from .wallet import admin_router, payments_router, router as wallet_router

    app.include_router(chat_router)
    app.include_router(wallet_router)
    app.include_router(payments_router)
    app.include_router(notifications_router)
    app.include_router(admin_router)

    return app


__all__ = ['create_app']
