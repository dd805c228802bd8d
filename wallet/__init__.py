"""Wallet balances, ledger operations and VNPay top-up reconciliation.

This module provides:
1. WalletManager - balance queries, withdrawals, internal debits and credits,
   admin adjustments and admin settlement of pending transactions
2. PaymentReconciler - VNPay top-up creation and callback handling
"""

import logging
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID

from errors import InvalidArgumentError, NotFoundError
from .db import WalletStore
from .exceptions import InsufficientBalanceError, TransactionFinalizedError, WalletError
from .models import (
    CallbackOutcome,
    CallbackResult,
    TopupResult,
    TransactionQuery,
    TransactionStatus,
    TransactionType,
    WalletTransaction
)
from .reconcile import PaymentReconciler

logger = logging.getLogger(__name__)


def _require_positive(amount: Decimal) -> Decimal:
    amount = Decimal(amount)
    if amount <= 0:
        raise InvalidArgumentError("Amount must be positive")
    return amount


class WalletManager:
    """Ledger operations on user balances."""

    def __init__(self, store: WalletStore):
        self.store = store

    async def balance(self, user_id: UUID) -> Decimal:
        balance = await self.store.get_balance(user_id)
        if balance is None:
            raise NotFoundError(f"User {user_id} not found")
        return balance

    async def list_transactions(self, query: TransactionQuery) -> Tuple[List[WalletTransaction], int]:
        return await self.store.list_transactions(query)

    async def withdraw(
        self,
        user_id: UUID,
        amount: Decimal,
        bank_name: str,
        bank_account: str
    ) -> Tuple[WalletTransaction, Decimal]:
        """Debit the balance now and leave the payout PENDING for an admin."""
        amount = _require_positive(amount)
        transaction, balance = await self.store.apply_balance_change(
            user_id,
            -amount,
            TransactionType.WITHDRAW,
            TransactionStatus.PENDING,
            f"Rút tiền về {bank_name} - {bank_account}"
        )
        logger.info(f"User {user_id} requested withdrawal of {amount} VND")
        return transaction, balance

    async def charge(
        self,
        user_id: UUID,
        amount: Decimal,
        type: TransactionType,
        description: str,
        listing_id: Optional[UUID] = None
    ) -> Tuple[WalletTransaction, Decimal]:
        """Immediate internal debit, e.g. a premium upgrade."""
        amount = _require_positive(amount)
        transaction, balance = await self.store.apply_balance_change(
            user_id, -amount, type, TransactionStatus.COMPLETED, description, listing_id
        )
        logger.info(f"Charged {amount} VND to {user_id} ({type.value})")
        return transaction, balance

    async def add_commission(
        self,
        seller_id: UUID,
        amount: Decimal,
        listing_id: Optional[UUID],
        description: str
    ) -> Tuple[WalletTransaction, Decimal]:
        amount = _require_positive(amount)
        return await self.store.apply_balance_change(
            seller_id,
            amount,
            TransactionType.COMMISSION,
            TransactionStatus.COMPLETED,
            description,
            listing_id
        )

    async def admin_adjust(
        self,
        user_id: UUID,
        amount: Decimal,
        add: bool,
        description: Optional[str] = None
    ) -> Tuple[WalletTransaction, Decimal]:
        """Credit or debit a user on an administrator's behalf."""
        amount = _require_positive(amount)
        if add:
            type = TransactionType.ADMIN_ADD
            delta = amount
            description = description or f"Admin cộng tiền: {amount} VNĐ"
        else:
            type = TransactionType.ADMIN_DEDUCT
            delta = -amount
            description = description or f"Admin trừ tiền: {amount} VNĐ"

        transaction, balance = await self.store.apply_balance_change(
            user_id, delta, type, TransactionStatus.COMPLETED, description
        )
        logger.info(f"Admin {type.value} of {amount} VND for {user_id}, balance now {balance}")
        return transaction, balance

    async def settle_transaction(
        self,
        transaction_id: UUID,
        status: TransactionStatus,
        note: Optional[str] = None
    ) -> WalletTransaction:
        """Move a PENDING transaction to a terminal status.

        Completing a DEPOSIT credits its amount in the same store transaction.

        Raises:
            NotFoundError: Unknown transaction
            InvalidArgumentError: Target status is PENDING
            TransactionFinalizedError: Transaction already left PENDING
        """
        if status == TransactionStatus.PENDING:
            raise InvalidArgumentError("Target status must be COMPLETED, FAILED or CANCELLED")

        transaction = await self.store.get_transaction(transaction_id)
        if not transaction:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        if transaction.status != TransactionStatus.PENDING:
            raise TransactionFinalizedError(
                f"Transaction {transaction_id} is already {transaction.status.value}"
            )

        description = f"{transaction.description} - Admin: {note}" if note else None

        if status == TransactionStatus.COMPLETED:
            settled = await self.store.complete_pending(
                transaction_id,
                description,
                credit=transaction.type == TransactionType.DEPOSIT
            )
        else:
            settled = await self.store.close_pending(transaction_id, status, description)

        if settled is None:
            raise TransactionFinalizedError(f"Transaction {transaction_id} was settled concurrently")

        logger.info(f"Transaction {transaction_id} settled as {status.value}")
        return settled


__all__ = [
    'WalletManager',
    'WalletStore',
    'PaymentReconciler',
    'WalletError',
    'InsufficientBalanceError',
    'TransactionFinalizedError',
    'CallbackOutcome',
    'CallbackResult',
    'TopupResult',
    'TransactionQuery',
    'TransactionStatus',
    'TransactionType',
    'WalletTransaction'
]
