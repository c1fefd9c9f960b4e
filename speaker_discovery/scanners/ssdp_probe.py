"""
SSDP probe implementation for Speaker Discovery Module.

This module sends one UPnP M-SEARCH for media renderers to the SSDP multicast
group and listens on the same socket for a fixed window, turning every
response that carries a vendor signature into a device observation.
"""

import socket
import struct
import time
from typing import Callable, List, Optional

from .base_scanner import BaseScanner, ScanResult, ObservationSink
from ..config.config_loader import SSDPConfig
from ..core.data_models import DeviceObservation, DiscoveryStrategy, ScanStatus
from ..core.response_parser import parse_ssdp_response
from ..utils.error_handler import (
    ErrorContext,
    ErrorHandler,
    ErrorSeverity,
    SocketSetupError,
    classify_socket_error,
)
from ..utils.logger import Logger


def _default_socket_factory() -> socket.socket:
    return socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)


def build_msearch(config: SSDPConfig) -> bytes:
    """
    Build the M-SEARCH request for the configured search target.

    Args:
        config: SSDP configuration

    Returns:
        Encoded request datagram
    """
    lines = [
        "M-SEARCH * HTTP/1.1",
        f"HOST: {config.multicast_address}:{config.port}",
        'MAN: "ssdp:discover"',
        f"MX: {config.mx}",
        f"ST: {config.search_target}",
        "",
        "",
    ]
    return "\r\n".join(lines).encode("utf-8")


class SSDPProbe(BaseScanner):
    """
    Multicast SSDP probe.

    The listen window is the only termination condition. Setup failures are
    reported and produce zero observations; individual packets that do not
    match the vendor allow-list are skipped.
    """

    strategy = DiscoveryStrategy.SSDP

    def __init__(self, config: Optional[SSDPConfig] = None, logger: Optional[Logger] = None,
                 error_handler: Optional[ErrorHandler] = None,
                 socket_factory: Optional[Callable[[], socket.socket]] = None):
        """
        Initialize the SSDP probe.

        Args:
            config: SSDP configuration (defaults when omitted)
            logger: Logger instance for outputting scan progress and errors
            error_handler: ErrorHandler instance for centralized error management
            socket_factory: Callable returning a fresh UDP socket
        """
        super().__init__(logger, error_handler or ErrorHandler(logger))
        self.config = config or SSDPConfig()
        self._socket_factory = socket_factory or _default_socket_factory

    def scan(self, sink: Optional[ObservationSink] = None) -> ScanResult:
        """
        Send the M-SEARCH and collect matching responses until the window closes.

        Args:
            sink: Callable invoked with each accepted observation

        Returns:
            ScanResult with one observation per accepted response
        """
        self._log_info(
            f"Starting SSDP probe on {self.config.multicast_address}:{self.config.port} "
            f"(window {self.config.listen_window}s)"
        )
        self._start_scan_timer()

        observations: List[DeviceObservation] = []
        errors: List[str] = []
        received = 0
        sock = None
        membership = None

        try:
            sock = self._socket_factory()
            membership = self._setup_socket(sock)
            received = self._listen(sock, observations, sink)
        except SocketSetupError as e:
            errors.append(self.error_handler.handle_error(e, e.error_context))
        finally:
            if sock is not None:
                self._close_socket(sock, membership)

        scan_duration = self._end_scan_timer()
        scan_status = ScanStatus.FAILED if errors else ScanStatus.COMPLETED

        self._log_info(
            f"SSDP probe completed. Accepted {len(observations)} of {received} responses "
            f"in {scan_duration:.2f} seconds"
        )

        return ScanResult(
            strategy=self.strategy,
            scan_status=scan_status,
            observations=observations,
            scan_duration=scan_duration,
            errors=errors,
            metadata={
                "responses_received": received,
                "responses_accepted": len(observations),
                "listen_window": self.config.listen_window,
                "search_target": self.config.search_target,
            },
        )

    def _setup_socket(self, sock: socket.socket) -> bytes:
        """
        Bind, join the multicast group, set the TTL and send the M-SEARCH.

        Returns:
            The packed membership request, used to leave the group later

        Raises:
            SocketSetupError: If any setup step fails
        """
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(('', self.config.port))

            membership = struct.pack(
                "=4sI", socket.inet_aton(self.config.multicast_address), socket.INADDR_ANY
            )
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, membership)
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, self.config.ttl)

            sock.sendto(build_msearch(self.config), (self.config.multicast_address, self.config.port))
            self._log_debug(f"M-SEARCH sent for {self.config.search_target}")
            return membership
        except OSError as e:
            context = ErrorContext(
                error_type=classify_socket_error(e),
                severity=ErrorSeverity.HIGH,
                operation="setup_socket",
                component="SSDPProbe",
                additional_info={"port": self.config.port},
            )
            raise SocketSetupError(f"SSDP socket setup failed: {e}", context) from e

    def _listen(self, sock: socket.socket, observations: List[DeviceObservation],
                sink: Optional[ObservationSink]) -> int:
        """
        Receive datagrams until the listen window closes.

        Returns:
            Number of datagrams received
        """
        received = 0
        deadline = time.monotonic() + self.config.listen_window

        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break

            try:
                sock.settimeout(remaining)
                data, address = sock.recvfrom(self.config.buffer_size)
            except socket.timeout:
                continue
            except OSError as e:
                self._log_debug(f"SSDP receive failed, closing window early: {e}")
                break

            received += 1
            text = data.decode("utf-8", errors="ignore")
            observation = parse_ssdp_response(text, address[0], self.config.vendor_tokens)
            if observation is None:
                self._log_debug(f"Ignoring SSDP response from {address[0]}")
                continue

            self._log_debug(f"Speaker response from {address[0]}: {observation.model}")
            self._emit(observation, observations, sink)

        return received

    def _close_socket(self, sock: socket.socket, membership: Optional[bytes]) -> None:
        if membership is not None:
            try:
                sock.setsockopt(socket.IPPROTO_IP, socket.IP_DROP_MEMBERSHIP, membership)
            except OSError as e:
                self._log_debug(f"Could not leave multicast group: {e}")
        sock.close()
