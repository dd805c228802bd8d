"""Database module for managing connections to PostgreSQL.

This module handles:
- Database connection pool initialization
- Schema management
- Connection lifecycle
"""

import logging
from typing import Optional

import asyncpg
import backoff

from .exceptions import DatabaseError, DatabaseSchemaError, DuplicateConversationError
from .lib.schema_manager import SchemaManager

logger = logging.getLogger(__name__)

_pool: Optional[asyncpg.Pool] = None


@backoff.on_exception(
    backoff.expo,
    (asyncpg.exceptions.PostgresConnectionError, asyncpg.exceptions.CannotConnectNowError, OSError),
    max_tries=5
)
async def init_db(db_url: str, force_recreate: bool = False) -> asyncpg.Pool:
    """Initialize the database connection pool and schema.

    Args:
        db_url: Database connection URL
        force_recreate: If True, drop and recreate all tables

    Returns:
        The connection pool

    Raises:
        ValueError: If database URL is not provided
        DatabaseSchemaError: If the schema cannot be applied
    """
    global _pool

    if not db_url:
        raise ValueError("Database URL not provided")

    if _pool:
        return _pool

    try:
        _pool = await asyncpg.create_pool(
            db_url,
            min_size=2,
            max_size=20,
            max_inactive_connection_lifetime=300.0,
            command_timeout=60.0
        )

        schema_manager = SchemaManager(_pool)
        if force_recreate:
            logger.info("Force recreate requested. Dropping existing tables...")
            await schema_manager.drop_all_tables()
        await schema_manager.initialize()

        logger.info("Database initialized")
        return _pool

    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        if _pool:
            await _pool.close()
            _pool = None
        raise


async def close() -> None:
    """Close the database connection pool."""
    global _pool

    if _pool:
        await _pool.close()
        _pool = None
        logger.info("Database pool closed")


__all__ = [
    'init_db',
    'close',
    'DatabaseError',
    'DatabaseSchemaError',
    'DuplicateConversationError'
]
