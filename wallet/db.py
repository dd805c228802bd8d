import logging
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID

import asyncpg

from database.exceptions import DatabaseError
from errors import NotFoundError
from .exceptions import InsufficientBalanceError
from .models import (
    TransactionQuery,
    TransactionStatus,
    TransactionType,
    WalletTransaction
)

logger = logging.getLogger(__name__)

TRANSACTION_COLUMNS = '''
    id, user_id, amount, type, status, description, reference_id,
    listing_id, created_at, updated_at
'''


def _to_transaction(row) -> WalletTransaction:
    return WalletTransaction(**dict(row))


class WalletStore:
    """Balances and the wallet transaction ledger.

    Balance changes are always in-SQL increments. Status changes only ever
    happen from PENDING, guarded in the UPDATE itself.
    """

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def get_balance(self, user_id: UUID) -> Optional[Decimal]:
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetchval('SELECT balance FROM users WHERE id = $1', user_id)
        except asyncpg.PostgresError as e:
            logger.error(f"Error loading balance of {user_id}: {e}")
            raise DatabaseError(f"Failed to load balance: {str(e)}")

    async def create_transaction(
        self,
        user_id: UUID,
        amount: Decimal,
        type: TransactionType,
        status: TransactionStatus = TransactionStatus.PENDING,
        description: Optional[str] = None,
        reference_id: Optional[str] = None,
        listing_id: Optional[UUID] = None
    ) -> WalletTransaction:
        """Insert a ledger row without touching the balance."""
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f'''
                    INSERT INTO wallet_transactions (
                        user_id, amount, type, status, description, reference_id, listing_id
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7)
                    RETURNING {TRANSACTION_COLUMNS}
                    ''',
                    user_id,
                    amount,
                    type.value,
                    status.value,
                    description,
                    reference_id,
                    listing_id
                )
        except asyncpg.PostgresError as e:
            logger.error(f"Error creating {type.value} transaction for {user_id}: {e}")
            raise DatabaseError(f"Failed to create transaction: {str(e)}")
        return _to_transaction(row)

    async def get_transaction(self, transaction_id: UUID) -> Optional[WalletTransaction]:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f'SELECT {TRANSACTION_COLUMNS} FROM wallet_transactions WHERE id = $1',
                    transaction_id
                )
        except asyncpg.PostgresError as e:
            logger.error(f"Error loading transaction {transaction_id}: {e}")
            raise DatabaseError(f"Failed to load transaction: {str(e)}")
        return _to_transaction(row) if row else None

    async def get_transaction_by_reference(self, reference_id: str) -> Optional[WalletTransaction]:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f'SELECT {TRANSACTION_COLUMNS} FROM wallet_transactions WHERE reference_id = $1',
                    reference_id
                )
        except asyncpg.PostgresError as e:
            logger.error(f"Error loading transaction {reference_id}: {e}")
            raise DatabaseError(f"Failed to load transaction: {str(e)}")
        return _to_transaction(row) if row else None

    async def list_transactions(self, query: TransactionQuery) -> Tuple[List[WalletTransaction], int]:
        conditions = ['user_id = $1']
        params = [query.user_id]

        if query.type:
            params.append(query.type.value)
            conditions.append(f'type = ${len(params)}')
        if query.status:
            params.append(query.status.value)
            conditions.append(f'status = ${len(params)}')

        where = ' AND '.join(conditions)
        try:
            async with self.pool.acquire() as conn:
                total = await conn.fetchval(
                    f'SELECT COUNT(*) FROM wallet_transactions WHERE {where}',
                    *params
                )
                rows = await conn.fetch(
                    f'''
                    SELECT {TRANSACTION_COLUMNS}
                    FROM wallet_transactions
                    WHERE {where}
                    ORDER BY created_at DESC
                    LIMIT ${len(params) + 1} OFFSET ${len(params) + 2}
                    ''',
                    *params,
                    query.limit,
                    query.offset
                )
        except asyncpg.PostgresError as e:
            logger.error(f"Error listing transactions of {query.user_id}: {e}")
            raise DatabaseError(f"Failed to list transactions: {str(e)}")
        return [_to_transaction(row) for row in rows], int(total)

    async def apply_balance_change(
        self,
        user_id: UUID,
        delta: Decimal,
        type: TransactionType,
        status: TransactionStatus,
        description: str,
        listing_id: Optional[UUID] = None
    ) -> Tuple[WalletTransaction, Decimal]:
        """Move a user's balance by delta and record it in one transaction.

        A debit that would leave the balance negative changes nothing.

        Returns:
            The ledger row and the new balance

        Raises:
            NotFoundError: If the user does not exist
            InsufficientBalanceError: If the balance does not cover a debit
        """
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    balance = await conn.fetchval(
                        '''
                        UPDATE users
                        SET balance = balance + $2, updated_at = now()
                        WHERE id = $1 AND balance + $2 >= 0
                        RETURNING balance
                        ''',
                        user_id,
                        delta
                    )
                    if balance is None:
                        exists = await conn.fetchval('SELECT 1 FROM users WHERE id = $1', user_id)
                        if not exists:
                            raise NotFoundError(f"User {user_id} not found")
                        raise InsufficientBalanceError("Insufficient balance")

                    row = await conn.fetchrow(
                        f'''
                        INSERT INTO wallet_transactions (
                            user_id, amount, type, status, description, listing_id
                        ) VALUES ($1, $2, $3, $4, $5, $6)
                        RETURNING {TRANSACTION_COLUMNS}
                        ''',
                        user_id,
                        delta,
                        type.value,
                        status.value,
                        description,
                        listing_id
                    )
        except asyncpg.PostgresError as e:
            logger.error(f"Error applying {type.value} of {delta} to {user_id}: {e}")
            raise DatabaseError(f"Failed to update balance: {str(e)}")
        return _to_transaction(row), balance

    async def complete_pending(
        self,
        transaction_id: UUID,
        description: Optional[str] = None,
        credit: bool = True
    ) -> Optional[WalletTransaction]:
        """Flip a PENDING row to COMPLETED, crediting its amount if asked.

        Returns:
            The completed row, or None if it was no longer PENDING
        """
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    row = await conn.fetchrow(
                        f'''
                        UPDATE wallet_transactions
                        SET status = 'COMPLETED',
                            description = COALESCE($2, description),
                            updated_at = now()
                        WHERE id = $1 AND status = 'PENDING'
                        RETURNING {TRANSACTION_COLUMNS}
                        ''',
                        transaction_id,
                        description
                    )
                    if row is None:
                        return None

                    if credit:
                        await conn.execute(
                            '''
                            UPDATE users
                            SET balance = balance + $2, updated_at = now()
                            WHERE id = $1
                            ''',
                            row['user_id'],
                            row['amount']
                        )
        except asyncpg.PostgresError as e:
            logger.error(f"Error completing transaction {transaction_id}: {e}")
            raise DatabaseError(f"Failed to complete transaction: {str(e)}")
        return _to_transaction(row)

    async def close_pending(
        self,
        transaction_id: UUID,
        status: TransactionStatus,
        description: Optional[str] = None
    ) -> Optional[WalletTransaction]:
        """Move a PENDING row to a terminal status without touching balances.

        Returns:
            The updated row, or None if it was no longer PENDING
        """
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f'''
                    UPDATE wallet_transactions
                    SET status = $2,
                        description = COALESCE($3, description),
                        updated_at = now()
                    WHERE id = $1 AND status = 'PENDING'
                    RETURNING {TRANSACTION_COLUMNS}
                    ''',
                    transaction_id,
                    status.value,
                    description
                )
        except asyncpg.PostgresError as e:
            logger.error(f"Error closing transaction {transaction_id}: {e}")
            raise DatabaseError(f"Failed to update transaction: {str(e)}")
        return _to_transaction(row) if row else None
