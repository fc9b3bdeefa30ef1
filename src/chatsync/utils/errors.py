"""
Error handling framework for chatsync.

This module provides:
- Hierarchical exception classes
- Error context preservation
- Structured error payloads for UI display
- Helpers for wrapping transport failures and for best-effort calls
"""

from typing import Optional, Dict, Any, List, Type, Awaitable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from contextlib import contextmanager

from .logging import get_logger


logger = get_logger("chatsync.errors")


class ErrorSeverity(Enum):
    """Error severity levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ErrorCategory(Enum):
    """Error categories for classification."""
    AUTHENTICATION = "authentication"
    VALIDATION = "validation"
    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Context information for an error."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    room_id: Optional[str] = None
    user_id: Optional[str] = None
    component: Optional[str] = None
    operation: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class ChatSyncError(Exception):
    """Base exception for all chatsync errors."""

    code: str = "CHATSYNC_ERROR"
    default_message: str = "An error occurred in chatsync"
    severity: ErrorSeverity = ErrorSeverity.ERROR
    category: ErrorCategory = ErrorCategory.UNKNOWN
    is_retryable: bool = False

    def __init__(
        self,
        message: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[BaseException] = None,
    ):
        self.message = message or self.default_message
        self.context = context or ErrorContext()
        self.cause = cause
        super().__init__(self.message)

    def get_suggestions(self) -> List[str]:
        """Get error resolution suggestions."""
        return []

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for display or JSON serialization."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "severity": self.severity.value,
                "category": self.category.value,
                "is_retryable": self.is_retryable,
                "suggestions": self.get_suggestions(),
                "cause": repr(self.cause) if self.cause else None,
                "context": {
                    "timestamp": self.context.timestamp.isoformat(),
                    "room_id": self.context.room_id,
                    "user_id": self.context.user_id,
                    "component": self.context.component,
                    "operation": self.context.operation,
                    "metadata": self.context.metadata,
                }
            }
        }


class AuthError(ChatSyncError):
    """Credential exchange or session start failed."""
    code = "AUTH_ERROR"
    default_message = "Login failed"
    category = ErrorCategory.AUTHENTICATION
    severity = ErrorSeverity.WARNING

    def get_suggestions(self) -> List[str]:
        return [
            "Check the homeserver URL",
            "Verify the user id and password or access token",
        ]


class ValidationError(ChatSyncError):
    """Input validation errors."""
    code = "VALIDATION_ERROR"
    default_message = "Validation error"
    category = ErrorCategory.VALIDATION
    severity = ErrorSeverity.WARNING

    def __init__(self, field: str, value: Any, constraint: str, **kwargs):
        self.field = field
        self.value = value
        self.constraint = constraint
        message = f"Validation failed for field '{field}': {constraint}"
        super().__init__(message, **kwargs)

    def get_suggestions(self) -> List[str]:
        return [f"Check the value of field '{self.field}'"]


class ConfigurationError(ChatSyncError):
    """Configuration errors."""
    code = "CONFIG_ERROR"
    default_message = "Configuration error"
    category = ErrorCategory.CONFIGURATION


class TransportError(ChatSyncError):
    """A delegated send/join/leave/create call failed."""
    code = "TRANSPORT_ERROR"
    default_message = "Transport operation failed"
    category = ErrorCategory.TRANSPORT


class NotConnectedError(TransportError):
    """An operation needs a live session and there is none."""
    code = "NOT_CONNECTED"
    default_message = "Not connected"

    def get_suggestions(self) -> List[str]:
        return ["Log in before issuing this command"]


class TimeoutError(ChatSyncError):
    """A bounded wait expired."""
    code = "TIMEOUT_ERROR"
    default_message = "Operation timed out"
    category = ErrorCategory.TIMEOUT
    severity = ErrorSeverity.WARNING


@contextmanager
def error_context(
    component: str,
    operation: str,
    wrap: Type[ChatSyncError] = TransportError,
    **metadata
):
    """
    Attach context to errors raised inside the block.

    chatsync errors are re-raised with their context filled in; any other
    exception is wrapped in ``wrap`` and chained.

    Args:
        component: Component name
        operation: Operation name
        wrap: Error class used for foreign exceptions
        **metadata: Additional context metadata (room_id/user_id are lifted)
    """
    room_id = metadata.pop("room_id", None)
    user_id = metadata.pop("user_id", None)
    context = ErrorContext(
        room_id=room_id,
        user_id=user_id,
        component=component,
        operation=operation,
        metadata=metadata,
    )

    try:
        yield context
    except ChatSyncError as e:
        e.context.component = e.context.component or component
        e.context.operation = e.context.operation or operation
        e.context.room_id = e.context.room_id or room_id
        e.context.user_id = e.context.user_id or user_id
        e.context.metadata.update(metadata)
        raise
    except Exception as e:
        logger.debug(
            "wrapping_foreign_error",
            component=component,
            operation=operation,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise wrap(str(e) or wrap.default_message, context=context, cause=e) from e


async def best_effort(awaitable: Awaitable[Any], event: str, **log_context) -> bool:
    """
    Await ``awaitable``, logging and swallowing any failure.

    Returns True when the call completed without raising.
    """
    try:
        await awaitable
        return True
    except Exception as e:
        logger.warning(
            event,
            error=str(e),
            error_type=type(e).__name__,
            **log_context
        )
        return False


__all__ = [
    'ChatSyncError',
    'ErrorContext',
    'ErrorSeverity',
    'ErrorCategory',
    'AuthError',
    'ValidationError',
    'ConfigurationError',
    'TransportError',
    'NotConnectedError',
    'TimeoutError',
    'error_context',
    'best_effort',
]
