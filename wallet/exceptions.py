"""Wallet error types."""

from errors import InvalidArgumentError


class WalletError(InvalidArgumentError):
    """Base exception for rejected wallet operations."""
    pass


class InsufficientBalanceError(WalletError):
    """Raised when a debit would leave the balance negative."""
    pass


class TransactionFinalizedError(WalletError):
    """Raised when a transaction that already left PENDING is settled again."""
    pass
