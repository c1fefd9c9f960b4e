"""
Core data models and enums for the Speaker Discovery Module.

This module defines the data structures used throughout the discovery process,
including raw probe observations, canonical device records and the explicit
lookup result returned at every store and registry boundary.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Dict, Any
from datetime import datetime, UTC


class DiscoveryStrategy(Enum):
    """Enumeration of the strategies that can produce a device observation."""
    SSDP = "SSDP"
    SCAN = "SCAN"


class ScanStatus(Enum):
    """Enumeration of possible scan statuses."""
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class DeviceState(Enum):
    """Lifecycle state of a device record as seen by discovery logic."""
    UNKNOWN = "unknown"
    DISCOVERED = "discovered"
    STALE = "stale"


@dataclass
class NetworkInfo:
    """
    Information about the host network used for the subnet sweep.

    Attributes:
        host_ip: IPv4 address of the scanning host
        interface_name: Name of the network interface the address belongs to
        network_prefix: First three octets of the /24 (e.g., "192.168.1")
        scan_range: List of IP addresses to be swept
    """
    host_ip: str
    interface_name: str
    network_prefix: str
    scan_range: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class DeviceObservation:
    """
    A single sighting of a device produced by one discovery strategy.

    Observations are ephemeral: they are resolved into a DeviceRecord by the
    registry and then discarded. Duplicates are expected.

    Attributes:
        source_ip: IP address the observation came from
        strategy: Strategy that produced the observation
        raw_mac: MAC-shaped token found in protocol metadata (if any)
        model: Raw model string (SERVER or USER-AGENT header)
        name: Raw name token (first token of the SERVER header)
        observed_at: When the observation was made
        port: Open service port for scan hits
        headers: Parsed SSDP headers, lowercase keys
    """
    source_ip: str
    strategy: DiscoveryStrategy
    raw_mac: Optional[str] = None
    model: Optional[str] = None
    name: Optional[str] = None
    observed_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    port: Optional[int] = None
    headers: Dict[str, str] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class DeviceRecord:
    """
    Canonical, persisted record of a speaker device.

    Records are immutable; the registry replaces a record with an updated
    copy so readers never observe a half-applied change.

    Attributes:
        identity_key: Unique key (parsed MAC or synthesized from the IP)
        name: Display name
        ip: Last known IP address
        model: Device model string
        connected: Whether the device answered the last observation/check
        last_seen: Time of the last observation or successful status check
    """
    identity_key: str
    name: str
    ip: str
    model: str
    connected: bool = False
    last_seen: Optional[datetime] = None

    @property
    def state(self) -> DeviceState:
        """Lifecycle state derived from the connection flag."""
        return DeviceState.DISCOVERED if self.connected else DeviceState.STALE

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the record for JSON output."""
        return {
            "identity_key": self.identity_key,
            "name": self.name,
            "ip": self.ip,
            "model": self.model,
            "connected": self.connected,
            "state": self.state.value,
            "last_seen": self.last_seen.isoformat() if self.last_seen else None,
        }


@dataclass(frozen=True)
class LookupResult:
    """
    Explicit found/not-found result of a record lookup.

    Attributes:
        found: True when a record matched the lookup
        record: The matching record, None when not found
    """
    found: bool
    record: Optional[DeviceRecord] = None

    @classmethod
    def hit(cls, record: DeviceRecord) -> "LookupResult":
        return cls(found=True, record=record)

    @classmethod
    def miss(cls) -> "LookupResult":
        return cls(found=False, record=None)
