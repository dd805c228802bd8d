"""VNPay payment gateway adapter.

Builds signed redirect URLs for top-ups and verifies the signature on
return and IPN callbacks. Signatures are HMAC-SHA512 over the sorted,
form-encoded, non-empty parameters.
"""

from .vnpay import (
    DATE_FORMAT,
    PAYMENT_EXPIRY_MINUTES,
    VN_TZ,
    GatewayError,
    PaymentRequest,
    VnpayConfig,
    VnpayGateway,
    amount_from_gateway,
    canonical_query,
    get_client_ip
)

__all__ = [
    'DATE_FORMAT',
    'PAYMENT_EXPIRY_MINUTES',
    'VN_TZ',
    'GatewayError',
    'PaymentRequest',
    'VnpayConfig',
    'VnpayGateway',
    'amount_from_gateway',
    'canonical_query',
    'get_client_ip'
]
