"""
Speaker Store

Persistence for discovered speaker records: the store contract used by the
device registry, an in-memory backend and a MongoDB backend.
"""

__version__ = "1.0.0"
__author__ = "Speaker Discovery Team"

# Exceptions are imported first; the discovery core depends on them
from .exceptions import (
    SpeakerStoreError,
    ConnectionError,
    ValidationError,
    OperationError,
    RetryExhaustedError,
)
from .logging_config import setup_logging, get_logger
from .base import SpeakerStore
from .models import SpeakerDocument
from .memory_store import InMemorySpeakerStore
from .mongo_store import MongoSpeakerStore

__all__ = [
    "SpeakerStore",
    "InMemorySpeakerStore",
    "MongoSpeakerStore",
    "SpeakerDocument",
    "SpeakerStoreError",
    "ConnectionError",
    "ValidationError",
    "OperationError",
    "RetryExhaustedError",
    "setup_logging",
    "get_logger",
]
