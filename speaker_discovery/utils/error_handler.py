"""
Error classification and reporting for the Speaker Discovery Module.

Discovery is best-effort: nothing raised inside a strategy may reach the host
process. This module provides the exception hierarchy used by the probes,
an ErrorContext describing where a failure happened, and an ErrorHandler that
logs each failure at the level its severity calls for and keeps per-type
counters for the scan results.
"""

import errno
import socket
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from .logger import Logger, get_logger


class ErrorType(Enum):
    """Enumeration for different types of errors."""
    SOCKET_SETUP_ERROR = "socket_setup_error"
    INTERFACE_ERROR = "interface_error"
    NETWORK_ERROR = "network_error"
    PERMISSION_ERROR = "permission_error"
    TIMEOUT_ERROR = "timeout_error"
    CONFIGURATION_ERROR = "configuration_error"
    STORE_ERROR = "store_error"
    STRATEGY_ERROR = "strategy_error"


class ErrorSeverity(Enum):
    """Enumeration for error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class ErrorContext:
    """
    Context information for error handling.

    Attributes:
        error_type: Type of error that occurred
        severity: Severity level of the error
        operation: Operation that was being performed when error occurred
        component: Component/module where error occurred
        additional_info: Additional context information
    """
    error_type: ErrorType
    severity: ErrorSeverity
    operation: str
    component: str
    additional_info: Dict[str, Any] = field(default_factory=dict)


class DiscoveryError(Exception):
    """Base exception class for Speaker Discovery Module."""

    def __init__(self, message: str, error_context: Optional[ErrorContext] = None):
        super().__init__(message)
        self.error_context = error_context


class SocketSetupError(DiscoveryError):
    """Raised when the multicast socket cannot be bound or joined to the group."""
    pass


class InterfaceNotFoundError(DiscoveryError):
    """Raised when no usable private IPv4 interface exists for the sweep."""
    pass


class ConfigurationError(DiscoveryError):
    """Exception for configuration-related errors."""
    pass


def classify_socket_error(error: Exception) -> ErrorType:
    """
    Map a low-level socket exception to an ErrorType.

    Args:
        error: Exception raised by a socket call

    Returns:
        ErrorType best describing the failure
    """
    if isinstance(error, (socket.timeout, TimeoutError)):
        return ErrorType.TIMEOUT_ERROR
    if isinstance(error, PermissionError):
        return ErrorType.PERMISSION_ERROR
    if isinstance(error, OSError) and error.errno in (errno.EACCES, errno.EPERM):
        return ErrorType.PERMISSION_ERROR
    if isinstance(error, OSError) and error.errno == errno.EADDRINUSE:
        return ErrorType.SOCKET_SETUP_ERROR
    return ErrorType.NETWORK_ERROR


class ErrorHandler:
    """
    Centralized error reporting for the discovery strategies.

    Failures never propagate out of a strategy; they are logged here with a
    level matching their severity and counted per ErrorType.
    """

    def __init__(self, logger: Optional[Logger] = None):
        """
        Initialize the ErrorHandler.

        Args:
            logger: Logger instance for error reporting
        """
        self.logger = logger or get_logger(__name__)
        self._lock = threading.Lock()
        self.error_statistics: Dict[ErrorType, int] = {
            error_type: 0 for error_type in ErrorType
        }

    def handle_error(self, error: Exception, context: ErrorContext) -> str:
        """
        Record and log an error.

        Args:
            error: The exception that occurred
            context: Error context information

        Returns:
            A one-line description suitable for ScanResult.errors
        """
        with self._lock:
            self.error_statistics[context.error_type] += 1

        self._log_error(error, context)

        if context.error_type == ErrorType.PERMISSION_ERROR:
            self.logger.info(
                f"{context.component} needs permission to open its socket; "
                f"run with elevated privileges or change the configured port"
            )

        return f"{context.component}.{context.operation}: {error}"

    def _log_error(self, error: Exception, context: ErrorContext) -> None:
        error_msg = f"Error in {context.component}.{context.operation}: {str(error)}"

        if context.severity == ErrorSeverity.CRITICAL:
            self.logger.error(error_msg, exception=error)
        elif context.severity == ErrorSeverity.HIGH:
            self.logger.error(error_msg)
        elif context.severity == ErrorSeverity.MEDIUM:
            self.logger.warning(error_msg)
        else:
            self.logger.debug(error_msg)

    def get_error_statistics(self) -> Dict[str, int]:
        """Return non-zero error counters keyed by ErrorType value."""
        with self._lock:
            return {
                error_type.value: count
                for error_type, count in self.error_statistics.items()
                if count
            }

    def reset_statistics(self) -> None:
        with self._lock:
            for error_type in self.error_statistics:
                self.error_statistics[error_type] = 0
