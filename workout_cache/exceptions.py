"""Application exception hierarchy.

All custom exceptions inherit from WorkoutCacheError.
Each exception has an error code for structured error handling and a
``retryable`` flag that the pipelines use to decide whether to back off
and try again.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes for structured error handling."""

    # General errors (1xxx)
    INTERNAL_ERROR = "WC-1000"
    CONFIGURATION_ERROR = "WC-1001"
    VALIDATION_ERROR = "WC-1002"

    # Query errors (2xxx)
    INVALID_QUERY = "WC-2000"
    UNKNOWN_ATTRIBUTE = "WC-2001"
    FILTER_TYPE_MISMATCH = "WC-2002"
    DIMENSION_MISMATCH = "WC-2003"

    # Embedding errors (3xxx)
    EMBEDDING_UNAVAILABLE = "WC-3000"
    EMBEDDING_TIMEOUT = "WC-3001"
    EMBEDDING_QUOTA = "WC-3002"
    EMBEDDING_INVALID_RESPONSE = "WC-3003"

    # Index backend errors (4xxx)
    BACKEND_UNAVAILABLE = "WC-4000"
    BACKEND_TIMEOUT = "WC-4001"
    BACKEND_THROTTLED = "WC-4002"

    # Item store errors (5xxx)
    ITEM_NOT_FOUND = "WC-5000"
    STORE_WRITE_FAILURE = "WC-5001"


class WorkoutCacheError(Exception):
    """Base exception for all workout cache errors.

    Attributes:
        message: Human-readable error message.
        code: Structured error code.
        details: Additional error context.
        retryable: Whether the operation may succeed if repeated.
    """

    retryable: bool = False

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "details": self.details,
                "retryable": self.retryable,
            }
        }


class ConfigurationError(WorkoutCacheError):
    """Configuration or environment error."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, details)


class ValidationError(WorkoutCacheError):
    """Input validation error (e.g. an item missing its text)."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.VALIDATION_ERROR, details)


class InvalidQueryError(WorkoutCacheError):
    """Malformed filter or schema mismatch. The caller must fix the input."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INVALID_QUERY,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class ProviderError(WorkoutCacheError):
    """Embedding provider failure (quota, timeout, transport)."""

    retryable = True

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.EMBEDDING_UNAVAILABLE,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class EmbeddingUnavailableError(WorkoutCacheError):
    """A pipeline could not obtain an embedding from the provider."""

    retryable = True

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.EMBEDDING_UNAVAILABLE,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class BackendUnavailableError(WorkoutCacheError):
    """Index backend overloaded, unreachable or too slow."""

    retryable = True

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.BACKEND_UNAVAILABLE,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class ItemNotFoundError(WorkoutCacheError):
    """Item lookup miss."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.ITEM_NOT_FOUND, details)


class StoreWriteError(WorkoutCacheError):
    """The item store could not durably persist an item."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.STORE_WRITE_FAILURE, details)
