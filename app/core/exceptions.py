"""Custom exception hierarchy."""

from typing import Optional


class AppError(Exception):
    """Base exception for application errors."""
    code = "internal_error"

    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class APIClientError(AppError):
    """Raised when an external API call fails."""
    code = "upstream_error"

    def __init__(
        self,
        message: str,
        original_error: Exception = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, original_error)
        self.status_code = status_code


class APITimeoutError(APIClientError):
    """Raised when an external API call times out."""
    code = "upstream_timeout"


class DatabaseError(AppError):
    """Raised when a database operation fails."""
    code = "database_error"


class ValidationError(AppError):
    """Raised when input validation fails."""
    code = "validation_error"


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    code = "configuration_error"


class NotFoundError(AppError):
    """Base exception for missing records."""
    code = "not_found"


class ClientNotFoundError(NotFoundError):
    code = "client_not_found"


class ObligationNotFoundError(NotFoundError):
    code = "obligation_not_found"


class InstanceNotFoundError(NotFoundError):
    code = "instance_not_found"


class UploadNotFoundError(NotFoundError):
    code = "upload_not_found"


class QueueItemNotFoundError(NotFoundError):
    code = "queue_item_not_found"


class ConflictError(AppError):
    """Base exception for conflicting state."""
    code = "conflict"


class DuplicateFileNameError(ConflictError):
    """Raised by storage when the destination object already exists."""
    code = "duplicate_file_name"


class DuplicateFileNameExhaustedError(ConflictError):
    """Raised when every collision-safe name attempt was taken."""
    code = "duplicate_file_name_exhausted"


class InvalidStateTransitionError(ConflictError):
    """Raised when a lifecycle transition is not allowed from the current state."""
    code = "invalid_state_transition"


class StorageError(AppError):
    """Raised when a storage operation fails for a reason other than a name collision."""
    code = "storage_error"


class OCRExtractionError(AppError):
    """Raised when the vision extraction backend fails.

    ``kind`` is one of ``rate_limited``, ``quota_exhausted``,
    ``upstream_error`` or ``unparseable_response``.
    """
    code = "ocr_extraction_error"

    RATE_LIMITED = "rate_limited"
    QUOTA_EXHAUSTED = "quota_exhausted"
    UPSTREAM_ERROR = "upstream_error"
    UNPARSEABLE_RESPONSE = "unparseable_response"

    def __init__(self, kind: str, message: str, original_error: Exception = None):
        super().__init__(message, original_error)
        self.kind = kind
