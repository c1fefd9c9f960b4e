"""
MongoDB speaker store

This module provides the MongoSpeakerStore class that persists speaker records
in a MongoDB collection, including connection management, index setup, and
retry with exponential backoff on transient connection failures.
"""

import logging
import random
import threading
import time
from typing import Any, Callable, Dict, Optional

from pymongo import DESCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import (
    ConnectionFailure,
    ServerSelectionTimeoutError,
    OperationFailure,
    PyMongoError
)

from speaker_discovery.core.data_models import DeviceRecord, LookupResult

from .base import SpeakerStore
from .exceptions import (
    ConnectionError,
    OperationError,
    RetryExhaustedError,
    ValidationError,
    sanitize_connection_string,
)
from .logging_config import get_logger
from .models import SpeakerDocument


class MongoSpeakerStore(SpeakerStore):
    """
    Speaker store backed by a MongoDB collection.

    Documents use the identity key as ``_id`` and carry a unique index on
    ``identity_key`` plus a secondary index on ``ip``. Every operation runs
    through _execute_with_retry, which retries connection failures and
    retryable server errors with exponential backoff and jitter.

    Attributes:
        connection_string: MongoDB connection string
        database_name: Name of the MongoDB database
        collection_name: Name of the speakers collection
        client: MongoDB client instance
        database: MongoDB database instance
    """

    # MongoDB error codes that are typically retryable
    RETRYABLE_CODES = {
        11600,  # InterruptedAtShutdown
        11602,  # InterruptedDueToReplStateChange
        10107,  # NotWritablePrimary
        13435,  # NotPrimaryNoSecondaryOk
        13436,  # NotPrimaryOrSecondary
        189,    # PrimarySteppedDown
        91,     # ShutdownInProgress
        7,      # HostNotFound
        6,      # HostUnreachable
        89,     # NetworkTimeout
        9001,   # SocketException
    }

    def __init__(self, connection_string: str = "mongodb://localhost:27017",
                 database_name: str = "multiroom", collection_name: str = "speakers",
                 collection: Optional[Collection] = None, max_retries: int = 3,
                 base_delay: float = 1.0) -> None:
        """
        Initialize the store with connection parameters.

        Args:
            connection_string: MongoDB connection string (e.g., 'mongodb://localhost:27017')
            database_name: Name of the database to use
            collection_name: Name of the speakers collection
            collection: Already connected collection to use instead of connecting
            max_retries: Attempts per operation
            base_delay: First retry delay in seconds

        Raises:
            ValidationError: If connection parameters are invalid
        """
        self.logger = get_logger(f"{__name__}.MongoSpeakerStore")

        for field_name, value in (("connection_string", connection_string),
                                  ("database_name", database_name),
                                  ("collection_name", collection_name)):
            if not value or not isinstance(value, str):
                raise ValidationError(
                    f"{field_name} must be a non-empty string",
                    field_name=field_name,
                )

        self.connection_string = connection_string
        self.database_name = database_name
        self.collection_name = collection_name
        self.client: Optional[MongoClient] = None
        self.database: Optional[Database] = None
        self._collection: Optional[Collection] = collection
        self._connection_lock = threading.RLock()

        # Connection configuration
        self._connection_timeout = 10  # seconds
        self._server_selection_timeout = 5  # seconds

        # Retry configuration
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = 30.0  # seconds
        self._backoff_factor = 2.0
        self._jitter_factor = 0.2  # ±20% jitter

        self.logger.debug(
            "MongoSpeakerStore initialized",
            extra={
                "database_name": self.database_name,
                "collection": self.collection_name,
                "connection_string": sanitize_connection_string(self.connection_string)
            }
        )

    def connect(self) -> None:
        """
        Connect to MongoDB, validate the connection and create the indexes.

        Raises:
            ConnectionError: If the connection cannot be established
        """
        self.logger.info("Attempting to connect to MongoDB")

        with self._connection_lock:
            try:
                self.client = MongoClient(
                    self.connection_string,
                    serverSelectionTimeoutMS=self._server_selection_timeout * 1000,
                    connectTimeoutMS=self._connection_timeout * 1000,
                    tz_aware=True,
                    retryWrites=True,
                    retryReads=True
                )
                self.database = self.client[self.database_name]
                self._collection = self.database[self.collection_name]
                self._validate_connection_with_retry()
                self._create_indexes(self._collection)
            except (PyMongoError, RetryExhaustedError) as e:
                self.logger.error(
                    "Failed to connect to MongoDB",
                    extra={
                        "error": str(e),
                        "connection_string": sanitize_connection_string(self.connection_string)
                    }
                )
                self.disconnect()
                raise ConnectionError(
                    "Failed to establish MongoDB connection",
                    connection_string=self.connection_string,
                    original_error=e
                ) from e

        self.logger.info(
            "Successfully connected to MongoDB",
            extra={"database_name": self.database_name, "collection": self.collection_name}
        )

    def _validate_connection_with_retry(self) -> None:
        last_error = None

        for attempt in range(1, self._max_retries + 1):
            try:
                self.client.admin.command('ping')
                return
            except (ConnectionFailure, ServerSelectionTimeoutError, OperationFailure) as e:
                last_error = e
                self.logger.warning(
                    f"Connection validation attempt {attempt} failed",
                    extra={"attempt": attempt, "max_attempts": self._max_retries, "error": str(e)}
                )
                if attempt < self._max_retries:
                    time.sleep(self._calculate_retry_delay(attempt))

        raise RetryExhaustedError(
            "Connection validation failed after all retry attempts",
            attempts=self._max_retries,
            last_error=last_error,
            operation="connection_validation"
        )

    def _calculate_retry_delay(self, attempt: int) -> float:
        """
        Calculate retry delay with exponential backoff and jitter.

        Args:
            attempt: Current attempt number (1-based)

        Returns:
            Delay in seconds
        """
        delay = self._base_delay * (self._backoff_factor ** (attempt - 1))
        delay = min(delay, self._max_delay)

        # Add jitter to avoid thundering herd
        jitter = delay * self._jitter_factor * (2 * random.random() - 1)
        return max(delay + jitter, 0.0)

    def disconnect(self) -> None:
        """
        Close the MongoDB connection. Safe to call multiple times.
        """
        with self._connection_lock:
            if self.client is not None:
                try:
                    self.client.close()
                    self.logger.info("MongoDB connection closed")
                except PyMongoError as e:
                    self.logger.warning(f"Error during disconnect: {e}")
            self._reset_connection()

    def close(self) -> None:
        self.disconnect()

    def _reset_connection(self) -> None:
        self.client = None
        self.database = None
        self._collection = None

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.disconnect()

    def _ensure_connected(self) -> Collection:
        """
        Return the speakers collection.

        Raises:
            ConnectionError: If not connected
        """
        collection = self._collection
        if collection is None:
            raise ConnectionError(
                "Not connected to MongoDB. Call connect() first.",
                connection_string=self.connection_string,
            )
        return collection

    def _reconnect(self) -> None:
        # An injected collection has no client to rebuild
        if self.client is None:
            return
        self.logger.debug("Attempting to reconnect after connection error")
        self.disconnect()
        self.connect()

    def _is_retryable_operation_error(self, error: OperationFailure) -> bool:
        """
        Determine if an OperationFailure is retryable.

        Args:
            error: The OperationFailure to check

        Returns:
            True if the error is retryable, False otherwise
        """
        if getattr(error, 'code', None) in self.RETRYABLE_CODES:
            return True

        error_msg = str(error).lower()
        retryable_patterns = ['not master', 'not primary', 'network', 'socket', 'interrupted']
        return any(pattern in error_msg for pattern in retryable_patterns)

    def _execute_with_retry(self, operation_func: Callable[[Collection], Any],
                            operation_name: str) -> Any:
        """
        Execute a collection operation with retry logic and error handling.

        Args:
            operation_func: Function called with the speakers collection
            operation_name: Name of the operation for logging

        Returns:
            Result of the operation function

        Raises:
            RetryExhaustedError: If all retry attempts are exhausted
            OperationError: If the operation fails with a non-retryable error
        """
        last_error = None

        for attempt in range(1, self._max_retries + 1):
            collection = self._ensure_connected()
            try:
                result = operation_func(collection)
                if attempt > 1:
                    self.logger.info(f"Operation {operation_name} succeeded after {attempt} attempts")
                return result

            except (ConnectionFailure, ServerSelectionTimeoutError) as e:
                last_error = e
                self.logger.warning(
                    f"Connection error during {operation_name} (attempt {attempt})",
                    extra={"attempt": attempt, "max_attempts": self._max_retries,
                           "error": str(e), "operation": operation_name}
                )
                if attempt < self._max_retries:
                    time.sleep(self._calculate_retry_delay(attempt))
                    try:
                        self._reconnect()
                    except ConnectionError as reconnect_error:
                        self.logger.warning(f"Reconnection failed: {reconnect_error}")

            except OperationFailure as e:
                if not self._is_retryable_operation_error(e):
                    self.logger.error(
                        f"Non-retryable operation error during {operation_name}",
                        extra={"error": str(e), "operation": operation_name}
                    )
                    raise OperationError(
                        f"Operation {operation_name} failed with non-retryable error",
                        operation=operation_name,
                        original_error=e
                    ) from e

                last_error = e
                self.logger.warning(
                    f"Retryable operation error during {operation_name} (attempt {attempt})",
                    extra={"attempt": attempt, "error": str(e), "operation": operation_name}
                )
                if attempt < self._max_retries:
                    time.sleep(self._calculate_retry_delay(attempt))

            except PyMongoError as e:
                self.logger.error(
                    f"PyMongo error during {operation_name}",
                    extra={"error": str(e), "operation": operation_name}
                )
                raise OperationError(
                    f"Operation {operation_name} failed with PyMongo error",
                    operation=operation_name,
                    original_error=e
                ) from e

        self.logger.error(
            f"All retry attempts exhausted for {operation_name}",
            extra={"attempts": self._max_retries,
                   "last_error": str(last_error) if last_error else "unknown"}
        )
        raise RetryExhaustedError(
            f"Operation {operation_name} failed after all retry attempts",
            attempts=self._max_retries,
            last_error=last_error,
            operation=operation_name
        )

    @staticmethod
    def _create_indexes(collection: Collection) -> None:
        collection.create_index("identity_key", unique=True, name="identity_key_unique")
        collection.create_index("ip", name="ip_lookup")

    def ensure_indexes(self) -> None:
        """Create the unique identity key index and the ip lookup index."""
        self._execute_with_retry(self._create_indexes, "ensure_indexes")
        self.logger.debug(f"Indexes ready on {self.collection_name}")

    def _to_result(self, doc: Optional[Dict[str, Any]]) -> LookupResult:
        if doc is None:
            return LookupResult.miss()
        try:
            return LookupResult.hit(SpeakerDocument.from_mongo_dict(doc).to_record())
        except ValueError as e:
            raise ValidationError(
                "Stored speaker document is invalid",
                field_name="_id",
                original_error=e
            ) from e

    def find_by_identity_key(self, identity_key: str) -> LookupResult:
        """
        Retrieve a speaker by identity key.

        Args:
            identity_key: Parsed MAC or synthesized key

        Returns:
            LookupResult with the record, or a miss

        Raises:
            OperationError: If the query fails
        """
        doc = self._execute_with_retry(
            lambda collection: collection.find_one({"_id": identity_key}),
            "find_by_identity_key"
        )
        return self._to_result(doc)

    def find_by_ip(self, ip_address: str) -> LookupResult:
        doc = self._execute_with_retry(
            lambda collection: collection.find_one({"ip": ip_address}, sort=[("last_seen", DESCENDING)]),
            "find_by_ip"
        )
        return self._to_result(doc)

    def save(self, record: DeviceRecord) -> DeviceRecord:
        """
        Insert or replace the speaker document for the record's identity key.

        Args:
            record: Record to persist

        Returns:
            The saved record

        Raises:
            ValidationError: If the record does not form a valid document
            OperationError: If the upsert fails
        """
        try:
            document = SpeakerDocument.from_record(record)
        except ValueError as e:
            raise ValidationError(
                f"Invalid speaker record '{record.identity_key}'",
                field_name="record",
                original_error=e
            ) from e

        def _perform_upsert(collection: Collection):
            return collection.replace_one(
                {"_id": document.identity_key},
                document.to_mongo_dict(),
                upsert=True
            )

        result = self._execute_with_retry(_perform_upsert, "save")

        if self.logger.isEnabledFor(logging.DEBUG):
            operation_type = "updated" if result.matched_count else "created"
            self.logger.debug(
                f"Successfully {operation_type} speaker: {record.identity_key}",
                extra={"identity_key": record.identity_key, "ip": record.ip,
                       "operation": operation_type}
            )
        return record
