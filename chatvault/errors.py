"""Exception hierarchy for chatvault.

Input validation errors carry a message that is safe to return to callers.
Everything else is logged in full and reduced to a generic message at the
HTTP boundary.
"""


class ChatVaultError(Exception):
    """Base class for all chatvault errors."""
    pass


class InputValidationError(ChatVaultError):
    """Raised when a request field is missing or malformed."""
    pass


class PaginationError(InputValidationError):
    """Raised when limit/offset query parameters are out of range."""
    pass


class IngestionError(ChatVaultError):
    """Raised when an ingestion attempt fails after validation."""
    pass


class ParsingError(IngestionError):
    """Raised when raw markup cannot be turned into a conversation."""
    pass


class UnknownFormatError(ParsingError):
    """Raised when no parser is registered for a format label."""

    def __init__(self, format_name: str):
        super().__init__(f"No parser registered for format: {format_name}")
        self.format_name = format_name


class StorageError(IngestionError):
    """Raised when a blob, index, or metrics write fails."""
    pass


class BlobNotFoundError(StorageError):
    """Raised when a content key does not resolve to a stored blob."""

    def __init__(self, key: str):
        super().__init__(f"Blob not found: {key}")
        self.key = key


class AlreadyInitializedError(ChatVaultError):
    """Raised when a store client is initialized twice."""
    pass
