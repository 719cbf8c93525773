"""
PatchWatch Exceptions
=====================

Exception hierarchy for the polling pipeline. Every error carries a
categorized code, structured context and a flag saying whether the run can
continue past it.
"""

from typing import Optional, Dict, Any
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for categorizing exceptions."""

    # Configuration errors (C001-C099)
    CONFIG_INVALID = "C001"
    CONFIG_MISSING = "C002"

    # Store errors (D001-D099)
    STORE_CONNECTION = "D001"
    STORE_QUERY = "D002"
    STORE_INSERT = "D003"
    STORE_DUPLICATE = "D004"
    STORE_RESPONSE = "D005"

    # Source ingestion errors (F001-F099)
    FEED_FETCH_TIMEOUT = "F002"
    FEED_PARSE_ERROR = "F003"
    FEED_NETWORK_ERROR = "F004"
    FEED_HTTP_STATUS = "F005"

    # Delivery errors (L001-L099)
    DELIVERY_FAILED = "L001"
    DELIVERY_RATE_LIMITED = "L002"
    DELIVERY_REJECTED = "L003"

    # Validation errors (V001-V099)
    VALIDATION_INVALID_FORMAT = "V002"

    # System errors (S001-S099)
    SYSTEM_UNEXPECTED = "S001"


class PatchWatchError(Exception):
    """Base exception for all PatchWatch errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        recoverable: bool = False,
    ):
        """Initialize PatchWatch error.

        Args:
            message: Technical error message for logging
            error_code: Categorized error code
            context: Additional context information
            user_message: Human readable message for run summaries
            recoverable: Whether the run can continue past this error
        """
        super().__init__(message)
        self.error_code = error_code
        self.context = context or {}
        self.user_message = user_message or message
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": str(self),
            "user_message": self.user_message,
            "context": self.context,
            "recoverable": self.recoverable,
        }

    def __str__(self) -> str:
        if self.error_code:
            return f"[{self.error_code.value}] {super().__str__()}"
        return super().__str__()


def _split_kwargs(kwargs: Dict[str, Any], *consumed: str) -> Dict[str, Any]:
    return {k: v for k, v in kwargs.items() if k not in consumed}


class ConfigurationError(PatchWatchError):
    """Missing or invalid settings. Always fatal to a run."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if config_key:
            context["config_key"] = config_key

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.CONFIG_INVALID),
            context=context,
            user_message=kwargs.get("user_message", f"Configuration error: {message}"),
            **_split_kwargs(kwargs, "context", "error_code", "user_message"),
        )


class StoreError(PatchWatchError):
    """Record store failures (query or insert)."""

    def __init__(
        self,
        message: str,
        resource: Optional[str] = None,
        status: Optional[int] = None,
        **kwargs,
    ):
        """Initialize store error.

        Args:
            message: Error message
            resource: Store resource (table) being accessed
            status: HTTP status returned by a remote store, if any
            **kwargs: Additional arguments for PatchWatchError
        """
        context = kwargs.get("context", {})
        if resource:
            context["resource"] = resource
        if status is not None:
            context["status"] = status

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.STORE_QUERY),
            context=context,
            user_message=kwargs.get("user_message", "Store operation failed"),
            recoverable=kwargs.get("recoverable", False),
            **_split_kwargs(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class DuplicateRecordError(StoreError):
    """The store rejected an insert because the record already exists."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.STORE_DUPLICATE)
        kwargs.setdefault("recoverable", True)
        kwargs.setdefault("user_message", "Record already stored")
        super().__init__(message, **kwargs)


class FeedError(PatchWatchError):
    """Source retrieval and extraction errors."""

    def __init__(self, message: str, feed_url: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if feed_url:
            context["feed_url"] = feed_url

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.FEED_NETWORK_ERROR),
            context=context,
            user_message=kwargs.get("user_message", f"Source processing failed: {message}"),
            recoverable=kwargs.get("recoverable", True),
            **_split_kwargs(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class DeliveryError(PatchWatchError):
    """Notification delivery errors."""

    def __init__(
        self,
        message: str,
        attempts: Optional[int] = None,
        retry_after: Optional[float] = None,
        **kwargs,
    ):
        context = kwargs.get("context", {})
        if attempts is not None:
            context["attempts"] = attempts
        if retry_after is not None:
            context["retry_after"] = retry_after

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.DELIVERY_FAILED),
            context=context,
            user_message=kwargs.get("user_message", "Notification delivery failed"),
            recoverable=kwargs.get("recoverable", True),
            **_split_kwargs(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class ValidationError(PatchWatchError):
    """Data validation errors."""

    def __init__(self, message: str, field_name: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if field_name:
            context["field_name"] = field_name

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.VALIDATION_INVALID_FORMAT),
            context=context,
            user_message=kwargs.get(
                "user_message", f"Invalid {field_name or 'input'}: {message}"
            ),
            recoverable=kwargs.get("recoverable", False),
            **_split_kwargs(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


def handle_exception(
    exception: Exception,
    logger,
    operation: str,
    context: Optional[Dict[str, Any]] = None,
) -> PatchWatchError:
    """Convert generic exceptions to PatchWatch exceptions with logging.

    Args:
        exception: Original exception
        logger: Logger instance for error logging
        operation: Operation that was being performed
        context: Additional context information

    Returns:
        PatchWatch exception with proper categorization
    """
    context = context or {}
    context["operation"] = operation
    context["original_exception_type"] = type(exception).__name__

    if isinstance(exception, PatchWatchError):
        logger.error(f"Operation '{operation}' failed", extra=exception.to_dict())
        return exception

    if isinstance(exception, (ConnectionError, TimeoutError)):
        error = PatchWatchError(
            message=f"Network error during {operation}: {exception}",
            error_code=ErrorCode.FEED_NETWORK_ERROR,
            context=context,
            user_message="Network connection failed",
            recoverable=True,
        )
    else:
        error = PatchWatchError(
            message=f"Unexpected error during {operation}: {exception}",
            error_code=ErrorCode.SYSTEM_UNEXPECTED,
            context=context,
            user_message=str(exception) or "An unexpected error occurred",
            recoverable=False,
        )

    logger.error(f"Operation '{operation}' failed", extra=error.to_dict())
    return error
