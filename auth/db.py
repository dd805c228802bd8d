import logging
from typing import Optional
from uuid import UUID

import asyncpg

from database.exceptions import DatabaseError
from .models import User, UserRole

logger = logging.getLogger(__name__)


def _to_user(row) -> User:
    return User(
        id=row['id'],
        email=row['email'],
        full_name=row['full_name'],
        phone=row['phone'],
        role=UserRole(row['role']),
        balance=row['balance']
    )


class UserStore:
    """Read access to the users table."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def get_user(self, user_id: UUID) -> Optional[User]:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    '''
                    SELECT id, email, full_name, phone, role, balance
                    FROM users
                    WHERE id = $1
                    ''',
                    user_id
                )
        except asyncpg.PostgresError as e:
            logger.error(f"Error loading user {user_id}: {e}")
            raise DatabaseError(f"Failed to load user: {str(e)}")

        return _to_user(row) if row else None
