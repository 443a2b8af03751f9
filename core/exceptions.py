"""
Custom exceptions for the FIPE crawl engine with structured error context.

Each exception carries a context dictionary for debugging and a reference
to the original exception when it wraps a lower-level failure.

Exception Hierarchy:
    CrawlError (base)
    ├── UpstreamError
    │   ├── TransportFailure
    │   │   └── RateLimited
    │   ├── DomainError
    │   └── ValidationError
    │       └── PeriodLabelError
    ├── ClassificationFailure
    └── PersistenceError
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class CrawlError(Exception):
    """
    Base exception for all crawl-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (endpoint, codes, etc.)
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
# Upstream Errors
# ============================================================================

class UpstreamError(CrawlError):
    """Base exception for failures talking to the FIPE service."""
    pass


class TransportFailure(UpstreamError):
    """
    Non-2xx response or network error after the retry budget is spent.

    Context should include:
        - endpoint: FIPE endpoint name
        - status_code: HTTP status code (if a response was received)
        - retry_count: Number of retries attempted
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        status_code: Optional[int] = None
    ):
        super().__init__(message, context, original_exception)
        self.status_code = status_code
        if status_code is not None:
            self.context["status_code"] = status_code


class RateLimited(TransportFailure):
    """HTTP 429 responses that outlasted every retry."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        retry_after: Optional[float] = None
    ):
        super().__init__(message, context, original_exception, status_code=429)
        self.retry_after = retry_after  # Seconds suggested by the server
        if retry_after is not None:
            self.context["retry_after"] = retry_after


class DomainError(UpstreamError):
    """
    FIPE answered 2xx with an error payload ({"codigo": ..., "erro": ...}).

    Never retried: the same parameters produce the same answer.
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        code: Optional[str] = None
    ):
        super().__init__(message, context, original_exception)
        self.code = code
        if code is not None:
            self.context["code"] = code


class ValidationError(UpstreamError):
    """
    Payload or value does not match the expected shape.

    Context should include:
        - endpoint or field_name
        - field_value (truncated if large)
    """
    pass


class PeriodLabelError(ValidationError):
    """Reference period label with an unknown month name or year."""
    pass


# ============================================================================
# Classification Errors
# ============================================================================

class ClassificationFailure(CrawlError):
    """Segment service unavailable or returned an unparseable answer."""
    pass


# ============================================================================
# Persistence Errors
# ============================================================================

class PersistenceError(CrawlError):
    """
    Exception raised when a store operation fails.

    Context should include:
        - operation: Repository operation that failed
        - table_name: Name of the table (if known)
    """
    pass
