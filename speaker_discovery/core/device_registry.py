"""
Device registry for the Speaker Discovery Module.

The registry owns the working snapshot of known speakers and is the only
component that writes to the store. Observations from any strategy, arriving
from any thread, are merged into records keyed by identity; merges for one
key are serialized while unrelated keys proceed in parallel.
"""

import ipaddress
import threading
from dataclasses import replace
from datetime import datetime, UTC
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from speaker_store.exceptions import SpeakerStoreError

from .data_models import DeviceObservation, DeviceRecord, LookupResult
from .response_parser import ResolvedDevice, is_default_model, is_default_name, resolve
from ..utils.logger import Logger, get_logger
from ..utils.network_utils import DEFAULT_REACHABILITY_PORTS, is_host_reachable


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _ip_sort_key(record: DeviceRecord):
    try:
        return (0, int(ipaddress.IPv4Address(record.ip)), record.identity_key)
    except ipaddress.AddressValueError:
        return (1, record.ip, record.identity_key)


class DeviceRegistry:
    """
    Thread-safe merge of observations into canonical device records.

    Records in the snapshot are immutable and replaced wholesale, so list()
    never returns a partially updated record.
    """

    def __init__(self, store, reachability_probe: Optional[Callable[[str, float, Sequence[int]], bool]] = None,
                 clock: Optional[Callable[[], datetime]] = None, logger: Optional[Logger] = None,
                 reachability_timeout: float = 1.0,
                 reachability_ports: Sequence[int] = DEFAULT_REACHABILITY_PORTS):
        """
        Initialize the registry.

        Args:
            store: SpeakerStore implementation used for persistence
            reachability_probe: Callable(ip, timeout, ports) -> bool for status checks
            clock: Callable returning the current UTC time
            logger: Logger instance
            reachability_timeout: Timeout for a status check probe, in seconds
            reachability_ports: Ports tried by the status check probe
        """
        self.store = store
        self.logger = logger or get_logger(__name__)
        self._reachability_probe = reachability_probe or is_host_reachable
        self._clock = clock or _utc_now
        self._reachability_timeout = reachability_timeout
        self._reachability_ports = tuple(reachability_ports)

        self._snapshot: Dict[str, DeviceRecord] = {}
        self._snapshot_lock = threading.Lock()
        self._key_locks: Dict[str, threading.Lock] = {}
        self._key_locks_guard = threading.Lock()

    def _lock_for(self, identity_key: str) -> threading.Lock:
        with self._key_locks_guard:
            lock = self._key_locks.get(identity_key)
            if lock is None:
                lock = self._key_locks[identity_key] = threading.Lock()
            return lock

    def merge(self, observation: DeviceObservation) -> DeviceRecord:
        """
        Merge one observation into the snapshot and the store.

        Creates the record when its identity key is unknown, otherwise
        refreshes ip, model, connection flag and last_seen. A name is only
        replaced while the current one is a placeholder, and a placeholder
        model never replaces a specific one.

        Args:
            observation: Observation from any strategy

        Returns:
            The record as stored after the merge
        """
        resolved = resolve(observation)

        with self._lock_for(resolved.identity_key):
            now = self._clock()
            existing = self._find_current(resolved.identity_key)

            if existing is None:
                record = DeviceRecord(
                    identity_key=resolved.identity_key,
                    name=resolved.name,
                    ip=resolved.ip,
                    model=resolved.model,
                    connected=True,
                    last_seen=now,
                )
                self.logger.info(f"New speaker {record.name}", key=record.identity_key,
                                 source=observation.strategy.value)
            else:
                record = self._apply(existing, resolved, now)
                self.logger.debug(f"Updated speaker {record.name}", key=record.identity_key,
                                  source=observation.strategy.value)

            self._save(record)
            with self._snapshot_lock:
                self._snapshot[record.identity_key] = record

        return record

    def _apply(self, existing: DeviceRecord, resolved: ResolvedDevice, now: datetime) -> DeviceRecord:
        name = existing.name
        if is_default_name(existing.name) and not is_default_name(resolved.name):
            name = resolved.name

        model = resolved.model
        if is_default_model(resolved.model) and not is_default_model(existing.model):
            model = existing.model

        return replace(existing, name=name, ip=resolved.ip, model=model,
                       connected=True, last_seen=now)

    def _find_current(self, identity_key: str) -> Optional[DeviceRecord]:
        with self._snapshot_lock:
            record = self._snapshot.get(identity_key)
        if record is not None:
            return record

        try:
            result = self.store.find_by_identity_key(identity_key)
        except SpeakerStoreError as e:
            self.logger.warning(f"Store lookup failed for {identity_key}: {e}")
            return None
        return result.record if result.found else None

    def _save(self, record: DeviceRecord) -> None:
        try:
            self.store.save(record)
        except SpeakerStoreError as e:
            self.logger.warning(f"Could not persist {record.identity_key}: {e}")

    def list(self) -> Tuple[DeviceRecord, ...]:
        """Immutable copy of the snapshot, ordered by IP address."""
        with self._snapshot_lock:
            records = list(self._snapshot.values())
        return tuple(sorted(records, key=_ip_sort_key))

    def get(self, identity_key: str) -> LookupResult:
        """
        Look up a record by identity key, snapshot first, then the store.

        Args:
            identity_key: Parsed MAC or synthesized key

        Returns:
            LookupResult with the record, or a miss
        """
        with self._snapshot_lock:
            record = self._snapshot.get(identity_key)
        if record is not None:
            return LookupResult.hit(record)

        try:
            return self.store.find_by_identity_key(identity_key)
        except SpeakerStoreError as e:
            self.logger.warning(f"Store lookup failed for {identity_key}: {e}")
            return LookupResult.miss()

    def _keys_for_ip(self, ip_address: str) -> List[str]:
        with self._snapshot_lock:
            keys = [key for key, record in self._snapshot.items() if record.ip == ip_address]
        if keys:
            return sorted(keys)

        try:
            result = self.store.find_by_ip(ip_address)
        except SpeakerStoreError as e:
            self.logger.warning(f"Store lookup failed for {ip_address}: {e}")
            return []
        return [result.record.identity_key] if result.found else []

    def _record_status(self, identity_key: str, ip_address: str, reachable: bool) -> Optional[DeviceRecord]:
        with self._lock_for(identity_key):
            with self._snapshot_lock:
                current = self._snapshot.get(identity_key)
            in_snapshot = current is not None
            if not in_snapshot:
                current = self._find_current(identity_key)

            # The record may have moved to another address since it was looked up
            if current is None or current.ip != ip_address:
                return None

            updated = replace(
                current,
                connected=reachable,
                last_seen=self._clock() if reachable else current.last_seen,
            )
            self._save(updated)
            if in_snapshot:
                with self._snapshot_lock:
                    self._snapshot[identity_key] = updated
        return updated

    def status_check(self, ip_address: str) -> bool:
        """
        Probe one address and record the outcome on every record at that address.

        Records in the snapshot are updated in place; when the snapshot has
        none, the most recent stored record for the address is updated in the
        store only. Never creates a record.

        Args:
            ip_address: Address to check

        Returns:
            True if the host is reachable
        """
        reachable = bool(self._reachability_probe(
            ip_address, self._reachability_timeout, self._reachability_ports
        ))

        updated = [
            record for record in (
                self._record_status(key, ip_address, reachable)
                for key in self._keys_for_ip(ip_address)
            )
            if record is not None
        ]
        if not updated:
            self.logger.debug(f"Status check for unknown address {ip_address}: reachable={reachable}")
            return reachable

        for record in updated:
            if reachable:
                self.logger.debug(f"{record.name} is reachable")
            else:
                self.logger.warning(f"{record.name} did not answer the status check",
                                    ip=ip_address, key=record.identity_key)
        return reachable

    def clear_snapshot(self) -> None:
        """Drop the working snapshot; persisted records are untouched."""
        with self._snapshot_lock:
            self._snapshot.clear()
