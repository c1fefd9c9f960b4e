"""
Core components for speaker discovery functionality.
"""

from .data_models import (
    DiscoveryStrategy,
    ScanStatus,
    DeviceState,
    NetworkInfo,
    DeviceObservation,
    DeviceRecord,
    LookupResult,
)
from .response_parser import ResolvedDevice, parse_ssdp_response, resolve
from .device_registry import DeviceRegistry
from .discovery_orchestrator import DiscoveryOrchestrator, DiscoveryRun

__all__ = [
    'DiscoveryStrategy',
    'ScanStatus',
    'DeviceState',
    'NetworkInfo',
    'DeviceObservation',
    'DeviceRecord',
    'LookupResult',
    'ResolvedDevice',
    'parse_ssdp_response',
    'resolve',
    'DeviceRegistry',
    'DiscoveryOrchestrator',
    'DiscoveryRun',
]
