"""Database error types."""

from errors import UpstreamError


class DatabaseError(UpstreamError):
    """Raised when a store operation fails."""
    pass


class DatabaseSchemaError(DatabaseError):
    """Raised when the schema cannot be created or migrated."""
    pass


class DuplicateConversationError(DatabaseError):
    """Raised when a conversation already exists for a participant pair."""
    pass
