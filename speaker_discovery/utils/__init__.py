"""
Utility functions and helper classes.
"""

from .logger import Logger, LogLevel, logger, set_log_level, get_logger
from .error_handler import (
    ErrorHandler, ErrorContext, ErrorType, ErrorSeverity,
    DiscoveryError, SocketSetupError, InterfaceNotFoundError, ConfigurationError,
)
from . import network_utils

__all__ = [
    'Logger',
    'LogLevel',
    'logger',
    'set_log_level',
    'get_logger',
    'ErrorHandler',
    'ErrorContext',
    'ErrorType',
    'ErrorSeverity',
    'DiscoveryError',
    'SocketSetupError',
    'InterfaceNotFoundError',
    'ConfigurationError',
    'network_utils',
]
