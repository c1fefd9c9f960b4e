"""
In-memory speaker store.

Default backend for single runs and tests; records live as long as the process.
"""

import threading
from datetime import datetime, UTC
from typing import Dict, List

from speaker_discovery.core.data_models import DeviceRecord, LookupResult

from .base import SpeakerStore
from .logging_config import get_logger


_EPOCH = datetime.min.replace(tzinfo=UTC)


class InMemorySpeakerStore(SpeakerStore):
    """Thread-safe dictionary store keyed by identity key."""

    def __init__(self) -> None:
        self._records: Dict[str, DeviceRecord] = {}
        self._lock = threading.Lock()
        self.logger = get_logger(f"{__name__}.InMemorySpeakerStore")

    def find_by_identity_key(self, identity_key: str) -> LookupResult:
        with self._lock:
            record = self._records.get(identity_key)
        return LookupResult.hit(record) if record is not None else LookupResult.miss()

    def find_by_ip(self, ip_address: str) -> LookupResult:
        with self._lock:
            matches = [record for record in self._records.values() if record.ip == ip_address]
        if not matches:
            return LookupResult.miss()
        return LookupResult.hit(max(matches, key=lambda r: r.last_seen or _EPOCH))

    def save(self, record: DeviceRecord) -> DeviceRecord:
        with self._lock:
            created = record.identity_key not in self._records
            self._records[record.identity_key] = record
        self.logger.debug(
            f"{'Created' if created else 'Updated'} speaker: {record.identity_key}",
            extra={"identity_key": record.identity_key, "ip": record.ip}
        )
        return record

    def all(self) -> List[DeviceRecord]:
        """Every stored record, in insertion order."""
        with self._lock:
            return list(self._records.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
