"""
Custom exceptions for the harvester with structured error context.

Every exception carries a context dictionary so that a failure recorded in a
checkpoint or a log line can be traced back to the project, offset or URL that
produced it.

Exception Hierarchy:
    HarvestException (base)
    ├── FetchError
    │   ├── RateLimitError
    │   ├── TransientError
    │   ├── PermanentError
    │   ├── RetriesExhaustedError
    │   └── CollectionNotFoundError
    ├── StoreError
    │   ├── StoreUnavailableError
    │   └── EntityPersistError
    ├── CheckpointError
    ├── TransformationError
    └── ExportError
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class HarvestException(Exception):
    """
    Base exception for all harvest-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (project, offset, url, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Fetch Errors
# ============================================================================

class FetchError(HarvestException):
    """
    Base exception for remote API failures.

    Context should include:
        - endpoint: The API path that failed
        - status_code: HTTP status code (if a response was received)
        - attempts: Number of attempts made
    """
    pass


class RateLimitError(FetchError):
    """Quota exceeded (HTTP 429) on every attempt."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        retry_after: Optional[float] = None
    ):
        super().__init__(message, context, original_exception)
        self.retry_after = retry_after
        if retry_after is not None:
            self.context["retry_after"] = retry_after


class TransientError(FetchError):
    """Server-side fault (5xx), timeout or connection-level failure."""
    pass


class PermanentError(FetchError):
    """Client-side fault that retrying cannot fix (400, 401, 403, ...)."""
    pass


class RetriesExhaustedError(FetchError):
    """
    Raised when every retry attempt failed with a retryable classification.

    The last classified failure is kept in ``last_error`` (a RateLimitError or
    TransientError) and chained as the cause.
    """

    def __init__(
        self,
        message: str,
        last_error: FetchError,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, context, original_exception=last_error)
        self.last_error = last_error


class CollectionNotFoundError(FetchError):
    """The requested project does not exist on the remote side."""
    pass


# ============================================================================
# Store Errors
# ============================================================================

class StoreError(HarvestException):
    """
    Base exception for persistence failures.

    Context should include:
        - operation: UPSERT, SELECT, ...
        - table_name: Name of the table
    """
    pass


class StoreUnavailableError(StoreError):
    """
    The store itself is unreachable (connection refused, dropped connection).

    Aborts the current collection; the last committed checkpoint is kept.
    """
    pass


class EntityPersistError(StoreError):
    """
    A single record could not be written.

    Context should include:
        - issue_key: Key of the issue that failed
    """
    pass


# ============================================================================
# Checkpoint Errors
# ============================================================================

class CheckpointError(HarvestException):
    """
    Raised on an invalid checkpoint transition.

    Context should include:
        - project_key: Project the checkpoint belongs to
        - offset / count: The values that were rejected
    """
    pass


# ============================================================================
# Transformation and Export Errors
# ============================================================================

class TransformationError(HarvestException):
    """A raw issue payload could not be mapped to an entity."""
    pass


class ExportError(HarvestException):
    """Writing the JSONL export failed."""
    pass
