"""
Store contract for persisted speaker records.
"""

from abc import ABC, abstractmethod

from speaker_discovery.core.data_models import DeviceRecord, LookupResult


class SpeakerStore(ABC):
    """
    Persistence boundary used by the device registry.

    Lookups return an explicit LookupResult instead of None. Implementations
    must be safe to call from several threads and raise SpeakerStoreError
    subclasses on failure.
    """

    @abstractmethod
    def find_by_identity_key(self, identity_key: str) -> LookupResult:
        pass

    @abstractmethod
    def find_by_ip(self, ip_address: str) -> LookupResult:
        """Return the most recently seen record with this IP address."""
        pass

    @abstractmethod
    def save(self, record: DeviceRecord) -> DeviceRecord:
        """
        Insert or replace the record with the same identity key.

        Returns:
            The saved record
        """
        pass

    def close(self) -> None:
        """Release backend resources. Safe to call more than once."""
