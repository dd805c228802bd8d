"""VNPay top-up creation and callback reconciliation.

The return redirect and the IPN call carry the same logical event and may
arrive in any order, more than once, or not at all. Both go through
``handle_callback``; only the shape of the reply differs.
"""

import logging
import secrets
import string
import time
from decimal import Decimal
from typing import Dict, Mapping, Optional
from urllib.parse import urlencode
from uuid import UUID

from errors import InvalidArgumentError, NotFoundError, SignatureInvalidError
from gateway import GatewayError, PaymentRequest, VnpayGateway, amount_from_gateway
from .db import WalletStore
from .models import (
    CallbackOutcome,
    CallbackResult,
    TopupResult,
    TransactionStatus,
    TransactionType,
    WalletTransaction
)

logger = logging.getLogger(__name__)

SUCCESS_CODE = "00"
ORDER_PREFIX = "TOPUP"
ORDER_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits

PENDING_DESCRIPTION = "Nạp tiền vào ví qua VNPay - Đang xử lý"

RETURN_STATUS = {
    CallbackOutcome.SUCCESS: "success",
    CallbackOutcome.FAILED: "failed",
    CallbackOutcome.ALREADY_PROCESSED: "processed",
    CallbackOutcome.NOT_FOUND: "notfound",
    CallbackOutcome.INVALID_SIGNATURE: "invalid",
    CallbackOutcome.INVALID_AMOUNT: "invalid_amount",
}

IPN_REPLY = {
    CallbackOutcome.SUCCESS: ("00", "Confirm Success"),
    CallbackOutcome.FAILED: ("00", "Confirm Success"),
    CallbackOutcome.NOT_FOUND: ("01", "Order not found"),
    CallbackOutcome.ALREADY_PROCESSED: ("02", "Order already confirmed"),
    CallbackOutcome.INVALID_AMOUNT: ("04", "Invalid amount"),
    CallbackOutcome.INVALID_SIGNATURE: ("97", "Invalid signature"),
}
IPN_ERROR_REPLY = ("99", "Unknown error")


def generate_order_id() -> str:
    """TOPUP + epoch milliseconds + 5 random uppercase alphanumerics."""
    suffix = ''.join(secrets.choice(ORDER_SUFFIX_ALPHABET) for _ in range(5))
    return f"{ORDER_PREFIX}{int(time.time() * 1000)}{suffix}"


def format_amount(amount: Decimal) -> str:
    if amount == amount.to_integral_value():
        return str(int(amount))
    return str(amount)


def split_full_name(full_name: Optional[str]):
    """First word is the first name, the rest the last name."""
    parts = (full_name or '').split()
    if not parts:
        return None, None
    return parts[0], ' '.join(parts[1:]) or None


class PaymentReconciler:
    def __init__(
        self,
        store: WalletStore,
        gateway: VnpayGateway,
        users,
        notifications,
        frontend_url: str,
        min_amount: int = 10000,
        max_amount: int = 100000000
    ):
        self.store = store
        self.gateway = gateway
        self.users = users
        self.notifications = notifications
        self.frontend_url = frontend_url.rstrip('/')
        self.min_amount = min_amount
        self.max_amount = max_amount

    async def create_topup(
        self,
        user_id: UUID,
        amount: int,
        client_ip: str,
        bank_code: Optional[str] = None,
        language: Optional[str] = None,
        order_type: Optional[str] = None
    ) -> TopupResult:
        """Record a PENDING deposit and build the signed gateway URL for it.

        Raises:
            InvalidArgumentError: Amount outside the configured bounds
            NotFoundError: Unknown user
        """
        if amount < self.min_amount:
            raise InvalidArgumentError(f"Số tiền nạp tối thiểu là {self.min_amount:,} VNĐ")
        if amount > self.max_amount:
            raise InvalidArgumentError(f"Số tiền nạp tối đa là {self.max_amount:,} VNĐ")

        user = await self.users.get_user(user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")

        order_id = generate_order_id()
        await self.store.create_transaction(
            user_id,
            Decimal(amount),
            TransactionType.DEPOSIT,
            TransactionStatus.PENDING,
            PENDING_DESCRIPTION,
            reference_id=order_id
        )

        first_name, last_name = split_full_name(user.full_name)
        payment_url = self.gateway.build_payment_url(PaymentRequest(
            order_id=order_id,
            amount=amount,
            order_info=f"Nap tien vao vi - Ma giao dich: {order_id}",
            ip_addr=client_ip,
            order_type=order_type or "topup",
            bank_code=bank_code,
            language=language,
            bill_mobile=user.phone,
            bill_email=user.email,
            bill_first_name=first_name,
            bill_last_name=last_name,
            bill_country="VN"
        ))

        logger.info(f"Created top-up {order_id} of {amount} VND for {user_id}")
        return TopupResult(payment_url=payment_url, order_id=order_id, amount=amount)

    async def handle_callback(self, params: Mapping[str, str]) -> CallbackResult:
        """Verify a gateway callback and apply it to the ledger at most once."""
        order_id = params.get("vnp_TxnRef")
        response_code = params.get("vnp_ResponseCode")

        try:
            self.gateway.check_signature(params)
        except SignatureInvalidError as e:
            logger.warning(f"Rejected VNPay callback: {e}")
            return CallbackResult(outcome=CallbackOutcome.INVALID_SIGNATURE, order_id=order_id)

        transaction = await self.store.get_transaction_by_reference(order_id) if order_id else None
        if not transaction:
            logger.warning(f"VNPay callback for unknown order {order_id}")
            return CallbackResult(outcome=CallbackOutcome.NOT_FOUND, order_id=order_id)

        if transaction.status != TransactionStatus.PENDING:
            logger.info(f"Order {order_id} already {transaction.status.value}, ignoring callback")
            return self._already_processed(transaction, order_id, response_code)

        try:
            amount = amount_from_gateway(params)
        except GatewayError as e:
            logger.warning(f"Order {order_id}: {e}")
            amount = None
        if amount != transaction.amount:
            logger.warning(
                f"Amount mismatch for order {order_id}: gateway {amount}, recorded {transaction.amount}"
            )
            return CallbackResult(
                outcome=CallbackOutcome.INVALID_AMOUNT,
                order_id=order_id,
                amount=amount,
                response_code=response_code,
                transaction=transaction
            )

        if response_code == SUCCESS_CODE:
            return await self._complete(transaction, params)
        return await self._fail(transaction, response_code)

    async def handle_return(self, params: Mapping[str, str]) -> str:
        """Process the browser redirect and return where to send the payer."""
        try:
            result = await self.handle_callback(params)
        except Exception as e:
            logger.error(f"Error processing VNPay return for {params.get('vnp_TxnRef')}: {e}")
            return self._wallet_url({"status": "error"})

        query = {"status": RETURN_STATUS[result.outcome]}
        if result.outcome == CallbackOutcome.SUCCESS:
            query["amount"] = format_amount(result.amount)
            query["orderId"] = result.order_id
        return self._wallet_url(query)

    async def handle_ipn(self, params: Mapping[str, str]) -> Dict[str, str]:
        """Process the server-to-server notification and build the gateway's reply."""
        try:
            result = await self.handle_callback(params)
        except Exception as e:
            logger.error(f"Error processing VNPay IPN for {params.get('vnp_TxnRef')}: {e}")
            code, message = IPN_ERROR_REPLY
        else:
            code, message = IPN_REPLY[result.outcome]
        return {"RspCode": code, "Message": message}

    async def transaction_status(self, user_id: UUID, order_id: str) -> WalletTransaction:
        transaction = await self.store.get_transaction_by_reference(order_id)
        if not transaction or transaction.user_id != user_id:
            raise NotFoundError("Không tìm thấy giao dịch")
        return transaction

    async def _complete(self, transaction: WalletTransaction, params: Mapping[str, str]) -> CallbackResult:
        order_id = transaction.reference_id
        transaction_no = params.get("vnp_TransactionNo")
        description = (
            f"Nạp tiền thành công qua VNPay - Ngân hàng: {params.get('vnp_BankCode')}"
            f" - Mã GD: {transaction_no}"
        )

        completed = await self.store.complete_pending(transaction.id, description, credit=True)
        if completed is None:
            # Another callback settled it between our read and this update
            return self._already_processed(transaction, order_id, SUCCESS_CODE)

        logger.info(f"Top-up {order_id} completed: +{transaction.amount} VND for {transaction.user_id}")
        await self.notifications.create_notification(
            transaction.user_id,
            "WALLET_TOPUP",
            "Nạp tiền thành công",
            f"Bạn đã nạp thành công {format_amount(transaction.amount)} VNĐ vào ví qua VNPay",
            metadata={"orderId": order_id, "transactionNo": transaction_no}
        )
        return CallbackResult(
            outcome=CallbackOutcome.SUCCESS,
            order_id=order_id,
            amount=completed.amount,
            response_code=SUCCESS_CODE,
            transaction=completed
        )

    async def _fail(self, transaction: WalletTransaction, response_code: Optional[str]) -> CallbackResult:
        order_id = transaction.reference_id
        failed = await self.store.close_pending(
            transaction.id,
            TransactionStatus.FAILED,
            f"Nạp tiền thất bại - Mã lỗi: {response_code}"
        )
        if failed is None:
            return self._already_processed(transaction, order_id, response_code)

        logger.info(f"Top-up {order_id} failed with response code {response_code}")
        await self.notifications.create_notification(
            transaction.user_id,
            "WALLET_TOPUP",
            "Nạp tiền thất bại",
            f"Giao dịch nạp {format_amount(transaction.amount)} VNĐ không thành công (mã lỗi {response_code})",
            metadata={"orderId": order_id, "responseCode": response_code}
        )
        return CallbackResult(
            outcome=CallbackOutcome.FAILED,
            order_id=order_id,
            amount=failed.amount,
            response_code=response_code,
            transaction=failed
        )

    def _already_processed(self, transaction, order_id, response_code) -> CallbackResult:
        return CallbackResult(
            outcome=CallbackOutcome.ALREADY_PROCESSED,
            order_id=order_id,
            amount=transaction.amount,
            response_code=response_code,
            transaction=transaction
        )

    def _wallet_url(self, query: Dict[str, str]) -> str:
        return f"{self.frontend_url}/wallet?{urlencode(query)}"
