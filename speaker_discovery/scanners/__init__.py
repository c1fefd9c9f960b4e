"""
Discovery strategies for Speaker Discovery.

This package contains the base scanner interface and the two strategies:
the SSDP multicast probe and the local subnet sweep.
"""

from .base_scanner import BaseScanner, ScanResult
from .ssdp_probe import SSDPProbe
from .network_sweeper import NetworkSweeper

__all__ = [
    'BaseScanner',
    'ScanResult',
    'SSDPProbe',
    'NetworkSweeper',
]
