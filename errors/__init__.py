"""Error taxonomy shared by the chat engine, wallet and API layers.

Every error carries the HTTP status the API layer answers with, so routers
and the WebSocket engine can translate failures without knowing which module
raised them.
"""


class MarketplaceError(Exception):
    """Base exception for marketplace operations."""
    status_code = 500


class UnauthenticatedError(MarketplaceError):
    """Raised when a credential is missing, malformed or unknown."""
    status_code = 401


class UnauthorizedError(MarketplaceError):
    """Raised when an authenticated user is not a participant or owner."""
    status_code = 403


class NotFoundError(MarketplaceError):
    """Raised when a referenced entity does not exist."""
    status_code = 404


class InvalidArgumentError(MarketplaceError):
    """Raised for malformed or out-of-range input."""
    status_code = 400


class SignatureInvalidError(MarketplaceError):
    """Raised when a gateway callback fails signature verification."""
    status_code = 400


class UpstreamError(MarketplaceError):
    """Raised when the store or the payment gateway fails."""
    status_code = 502


__all__ = [
    'MarketplaceError',
    'UnauthenticatedError',
    'UnauthorizedError',
    'NotFoundError',
    'InvalidArgumentError',
    'SignatureInvalidError',
    'UpstreamError'
]
