from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class TransactionType(str, Enum):
    DEPOSIT = "DEPOSIT"
    WITHDRAW = "WITHDRAW"
    COMMISSION = "COMMISSION"
    PREMIUM_UPGRADE = "PREMIUM_UPGRADE"
    ADMIN_ADD = "ADMIN_ADD"
    ADMIN_DEDUCT = "ADMIN_DEDUCT"


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class WalletTransaction(BaseModel):
    id: UUID
    user_id: UUID
    amount: Decimal
    type: TransactionType
    status: TransactionStatus
    description: Optional[str] = None
    reference_id: Optional[str] = None
    listing_id: Optional[UUID] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class TransactionQuery(BaseModel):
    """Page of one user's wallet history, newest first.

    Attributes:
        user_id: Owner of the transactions
        type: Only this transaction type, if given
        status: Only this status, if given
        page: 1-based page number
        limit: Page size
    """
    user_id: UUID
    type: Optional[TransactionType] = None
    status: Optional[TransactionStatus] = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class TopupResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    payment_url: str = Field(serialization_alias="paymentUrl")
    order_id: str = Field(serialization_alias="orderId")
    amount: int


class CallbackOutcome(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    ALREADY_PROCESSED = "ALREADY_PROCESSED"
    NOT_FOUND = "NOT_FOUND"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"


class CallbackResult(BaseModel):
    """What a gateway callback did to the ledger."""
    outcome: CallbackOutcome
    order_id: Optional[str] = None
    amount: Optional[Decimal] = None
    response_code: Optional[str] = None
    transaction: Optional[WalletTransaction] = None


# Request bodies

class TopupRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: int
    bank_code: Optional[str] = Field(default=None, alias="bankCode")
    language: Optional[str] = None
    order_type: Optional[str] = Field(default=None, alias="orderType")


class WithdrawRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: Decimal
    bank_name: str = Field(alias="bankName")
    bank_account: str = Field(alias="bankAccount")


class AdminBalanceRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: UUID = Field(alias="userId")
    amount: Decimal
    description: Optional[str] = None


class SettleRequest(BaseModel):
    status: TransactionStatus
    note: Optional[str] = None
