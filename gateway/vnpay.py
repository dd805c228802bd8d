import hashlib
import hmac
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote_plus, urlencode

from pydantic import BaseModel

from errors import InvalidArgumentError, SignatureInvalidError

logger = logging.getLogger(__name__)

# Asia/Ho_Chi_Minh has no daylight saving
VN_TZ = timezone(timedelta(hours=7), name="Asia/Ho_Chi_Minh")
DATE_FORMAT = "%Y%m%d%H%M%S"
PAYMENT_EXPIRY_MINUTES = 15

HASH_FIELDS = ("vnp_SecureHash", "vnp_SecureHashType")

BILLING_FIELDS = {
    "bill_mobile": "vnp_Bill_Mobile",
    "bill_email": "vnp_Bill_Email",
    "bill_first_name": "vnp_Bill_FirstName",
    "bill_last_name": "vnp_Bill_LastName",
    "bill_address": "vnp_Bill_Address",
    "bill_city": "vnp_Bill_City",
    "bill_country": "vnp_Bill_Country",
    "bill_state": "vnp_Bill_State",
}


class GatewayError(InvalidArgumentError):
    """Raised when a gateway request or callback cannot be interpreted."""
    pass


class VnpayConfig(BaseModel):
    tmn_code: str
    hash_secret: str
    payment_url: str
    return_url: str
    version: str = "2.1.0"
    command: str = "pay"
    currency: str = "VND"
    locale: str = "vn"

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> "VnpayConfig":
        return cls(
            tmn_code=settings['vnpay_tmn_code'],
            hash_secret=settings['vnpay_hash_secret'],
            payment_url=settings['vnpay_url'],
            return_url=settings['vnpay_return_url'],
            version=settings.get('vnpay_version') or "2.1.0",
            locale=settings.get('vnpay_locale') or "vn"
        )


class PaymentRequest(BaseModel):
    """Everything needed to send a payer to the gateway.

    Attributes:
        order_id: Merchant order reference, echoed back as vnp_TxnRef
        amount: Amount in VND
        order_info: Free text shown to the payer
        ip_addr: Payer's IP address
        order_type: Gateway order category
        bank_code: Optional bank to preselect
        language: Gateway UI locale, defaults to the configured one
    """
    order_id: str
    amount: int
    order_info: str
    ip_addr: str
    order_type: str = "topup"
    bank_code: Optional[str] = None
    language: Optional[str] = None
    bill_mobile: Optional[str] = None
    bill_email: Optional[str] = None
    bill_first_name: Optional[str] = None
    bill_last_name: Optional[str] = None
    bill_address: Optional[str] = None
    bill_city: Optional[str] = None
    bill_country: Optional[str] = None
    bill_state: Optional[str] = None


def canonical_query(params: Mapping[str, Any]) -> str:
    """Form-encode non-empty params sorted by name."""
    items = sorted(
        (key, str(value))
        for key, value in params.items()
        if value is not None and str(value) != ""
    )
    return urlencode(items, quote_via=quote_plus)


class VnpayGateway:
    """Builds signed payment URLs and verifies VNPay callbacks."""

    def __init__(self, config: VnpayConfig):
        self.config = config

    def sign(self, params: Mapping[str, Any]) -> str:
        """HMAC-SHA512 hex digest over the canonical query of params."""
        unsigned = {key: value for key, value in params.items() if key not in HASH_FIELDS}
        return hmac.new(
            self.config.hash_secret.encode('utf-8'),
            canonical_query(unsigned).encode('utf-8'),
            hashlib.sha512
        ).hexdigest()

    def verify(self, params: Mapping[str, Any]) -> bool:
        received = params.get("vnp_SecureHash")
        if not received:
            logger.warning(f"Callback for {params.get('vnp_TxnRef')} carries no signature")
            return False
        return hmac.compare_digest(self.sign(params), str(received).lower())

    def check_signature(self, params: Mapping[str, Any]):
        """Raise SignatureInvalidError unless the callback was signed with our secret."""
        if not self.verify(params):
            raise SignatureInvalidError(f"Invalid signature for order {params.get('vnp_TxnRef')}")

    def build_params(self, request: PaymentRequest, now: Optional[datetime] = None) -> Dict[str, str]:
        created = (now or datetime.now(timezone.utc)).astimezone(VN_TZ)
        expires = created + timedelta(minutes=PAYMENT_EXPIRY_MINUTES)

        params = {
            "vnp_Version": self.config.version,
            "vnp_Command": self.config.command,
            "vnp_TmnCode": self.config.tmn_code,
            "vnp_Locale": request.language or self.config.locale,
            "vnp_CurrCode": self.config.currency,
            "vnp_TxnRef": request.order_id,
            "vnp_OrderInfo": request.order_info,
            "vnp_OrderType": request.order_type or "topup",
            "vnp_Amount": str(request.amount * 100),
            "vnp_ReturnUrl": self.config.return_url,
            "vnp_IpAddr": request.ip_addr,
            "vnp_CreateDate": created.strftime(DATE_FORMAT),
            "vnp_ExpireDate": expires.strftime(DATE_FORMAT),
        }

        for attribute, field in BILLING_FIELDS.items():
            value = getattr(request, attribute)
            if value:
                params[field] = value

        if request.bank_code:
            params["vnp_BankCode"] = request.bank_code

        return params

    def build_payment_url(self, request: PaymentRequest, now: Optional[datetime] = None) -> str:
        params = self.build_params(request, now)
        query = canonical_query(params)
        signature = self.sign(params)
        return f"{self.config.payment_url}?{query}&vnp_SecureHash={signature}"


def amount_from_gateway(params: Mapping[str, Any]) -> Decimal:
    """Convert vnp_Amount (minor units) back to VND.

    Raises:
        GatewayError: If the amount is missing or not a number
    """
    raw = params.get("vnp_Amount")
    try:
        return (Decimal(str(raw)) / 100).quantize(Decimal("0.01"))
    except (InvalidOperation, TypeError):
        raise GatewayError(f"Invalid vnp_Amount: {raw!r}")


def get_client_ip(forwarded_for: Optional[str], remote_addr: Optional[str]) -> str:
    """Best-effort IPv4 address of the payer for vnp_IpAddr."""
    ip = forwarded_for or remote_addr or "127.0.0.1"

    if "," in ip:
        ip = ip.split(",")[0].strip()

    if ip in ("::1", "::ffff:127.0.0.1"):
        ip = "127.0.0.1"
    elif "::ffff:" in ip:
        ip = ip.replace("::ffff:", "")

    return ip
