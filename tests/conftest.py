"""Shared fixtures for the speaker discovery test suite."""

import socket
import threading
import time
from datetime import datetime, timedelta, UTC
from typing import List, Optional, Tuple

import pytest

from speaker_discovery.core.device_registry import DeviceRegistry
from speaker_discovery.utils.error_handler import ErrorHandler
from speaker_discovery.utils.logger import Logger, LogLevel
from speaker_store import InMemorySpeakerStore


SAMSUNG_RESPONSE = (
    "HTTP/1.1 200 OK\r\n"
    "CACHE-CONTROL: max-age=1800\r\n"
    "LOCATION: http://192.168.1.20:7676/smp_2_\r\n"
    "SERVER: SamsungMultiroom/1.0 UPnP/1.0\r\n"
    "ST: urn:schemas-upnp-org:device:MediaRenderer:1\r\n"
    "USN: uuid:00000000-0000-1000-8000-{mac}::urn:schemas-upnp-org:device:MediaRenderer:1\r\n"
    "\r\n"
)


class FixedClock:
    """Deterministic clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 1.0) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class FakeSocket:
    """
    Stand-in for a UDP socket.

    Queued datagrams are returned by recvfrom; once the queue is empty,
    recvfrom waits for the current timeout and raises socket.timeout.
    """

    def __init__(self, datagrams: Optional[List[Tuple[bytes, Tuple[str, int]]]] = None,
                 fail_on: Optional[str] = None):
        self.datagrams = list(datagrams or [])
        self.fail_on = fail_on
        self.options = []
        self.bound_to = None
        self.sent = []
        self.timeout = None
        self.closed = False

    def _maybe_fail(self, operation: str) -> None:
        if self.fail_on == operation:
            raise OSError(98, "Address already in use")

    def setsockopt(self, level, option, value):
        self._maybe_fail("setsockopt")
        self.options.append((level, option, value))

    def bind(self, address):
        self._maybe_fail("bind")
        self.bound_to = address

    def sendto(self, data, address):
        self._maybe_fail("sendto")
        self.sent.append((data, address))

    def settimeout(self, value):
        self.timeout = value

    def recvfrom(self, buffer_size):
        if self.datagrams:
            return self.datagrams.pop(0)
        time.sleep(min(self.timeout or 0.01, 0.05))
        raise socket.timeout("timed out")

    def close(self):
        self.closed = True


class ReachabilityStub:
    """Reachability probe with a fixed answer per IP; thread-safe call log."""

    def __init__(self, reachable=(), default: bool = False):
        self.reachable = set(reachable)
        self.default = default
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, ip_address, timeout, ports) -> bool:
        with self._lock:
            self.calls.append(ip_address)
        return ip_address in self.reachable or self.default


@pytest.fixture
def quiet_logger() -> Logger:
    return Logger("test", min_level=LogLevel.ERROR)


@pytest.fixture
def error_handler(quiet_logger) -> ErrorHandler:
    return ErrorHandler(quiet_logger)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def memory_store() -> InMemorySpeakerStore:
    return InMemorySpeakerStore()


@pytest.fixture
def reachability() -> ReachabilityStub:
    return ReachabilityStub()


@pytest.fixture
def registry(memory_store, reachability, clock, quiet_logger) -> DeviceRegistry:
    return DeviceRegistry(
        memory_store,
        reachability_probe=reachability,
        clock=clock,
        logger=quiet_logger,
    )


@pytest.fixture
def samsung_response():
    def _build(mac: str = "a0:b1:c2:d3:e4:f5") -> bytes:
        return SAMSUNG_RESPONSE.format(mac=mac).encode("utf-8")
    return _build
