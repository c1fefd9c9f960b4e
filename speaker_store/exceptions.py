"""
Exceptions raised by speaker store backends.

Callers that only need to know that persistence failed catch
SpeakerStoreError; the subclasses say which stage failed.
"""

import re
from typing import Optional, Dict, Any


class SpeakerStoreError(Exception):
    """
    Base class for store failures.

    Attributes:
        message: Human-readable error message
        context: Key/value details rendered after the message
        original_error: Driver exception that caused this one, if any
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None,
                 original_error: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.original_error = original_error

    def __str__(self) -> str:
        parts = [self.message]
        if self.context:
            parts.append("(" + ", ".join(f"{k}={v}" for k, v in self.context.items()) + ")")
        if self.original_error:
            parts.append(f"[{type(self.original_error).__name__}: {self.original_error}]")
        return " ".join(parts)


def sanitize_connection_string(conn_str: str) -> str:
    """Mask the user and password of a MongoDB URI before it is logged."""
    return re.sub(r'://([^:]+):([^@]+)@', r'://***:***@', conn_str)


class ConnectionError(SpeakerStoreError):
    """The MongoDB server could not be reached or did not answer a ping."""

    def __init__(self, message: str, connection_string: Optional[str] = None,
                 original_error: Optional[Exception] = None) -> None:
        context = {}
        if connection_string:
            context["uri"] = sanitize_connection_string(connection_string)
        super().__init__(message, context, original_error)


class ValidationError(SpeakerStoreError):
    """A store parameter, record or stored document is malformed."""

    def __init__(self, message: str, field_name: Optional[str] = None,
                 original_error: Optional[Exception] = None) -> None:
        super().__init__(message, {"field": field_name} if field_name else None, original_error)


class OperationError(SpeakerStoreError):
    """A query, upsert or index operation failed."""

    def __init__(self, message: str, operation: Optional[str] = None,
                 original_error: Optional[Exception] = None) -> None:
        super().__init__(message, {"operation": operation} if operation else None, original_error)


class RetryExhaustedError(OperationError):
    """Every retry attempt of a transient failure was used up."""

    def __init__(self, message: str, attempts: int, last_error: Optional[Exception] = None,
                 operation: Optional[str] = None) -> None:
        super().__init__(message, operation=operation, original_error=last_error)
        self.attempts = attempts
        self.context["attempts"] = attempts
