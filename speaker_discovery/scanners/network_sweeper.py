"""
Subnet sweep implementation for Speaker Discovery Module.

This module finds the host's private IPv4 address, enumerates its /24 and
probes every candidate with a bounded thread pool: a short reachability
check first, then the ordered speaker port list until one port accepts.
"""

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional, Sequence, Tuple

from .base_scanner import BaseScanner, ScanResult, ObservationSink
from ..config.config_loader import SweepConfig
from ..core.data_models import DeviceObservation, DiscoveryStrategy, NetworkInfo, ScanStatus
from ..core.response_parser import observation_from_scan_hit
from ..utils.error_handler import (
    ErrorContext,
    ErrorHandler,
    ErrorSeverity,
    ErrorType,
    InterfaceNotFoundError,
)
from ..utils.logger import Logger
from ..utils.network_utils import (
    find_local_private_ipv4,
    is_host_reachable,
    is_port_open,
    is_valid_ip,
    network_prefix,
    subnet_candidates,
)


ReachabilityProbe = Callable[[str, float, Sequence[int]], bool]
PortProbe = Callable[[str, int, float], bool]
LocalIPResolver = Callable[[Optional[str]], Optional[Tuple[str, str]]]


class NetworkSweeper(BaseScanner):
    """
    TCP sweep of the local /24 for hosts exposing a speaker port.

    At most ``max_parallel`` host probes are in flight at any moment, and
    scan() returns only after every dispatched probe has finished.
    """

    strategy = DiscoveryStrategy.SCAN

    def __init__(self, config: Optional[SweepConfig] = None, logger: Optional[Logger] = None,
                 error_handler: Optional[ErrorHandler] = None,
                 reachability_probe: Optional[ReachabilityProbe] = None,
                 port_probe: Optional[PortProbe] = None,
                 local_ip_resolver: Optional[LocalIPResolver] = None):
        """
        Initialize the network sweeper.

        Args:
            config: Sweep configuration (defaults when omitted)
            logger: Logger instance for outputting scan progress and errors
            error_handler: ErrorHandler instance for centralized error management
            reachability_probe: Callable(ip, timeout, ports) -> bool
            port_probe: Callable(ip, port, timeout) -> bool
            local_ip_resolver: Callable(interface) -> (interface, ip) or None
        """
        super().__init__(logger, error_handler or ErrorHandler(logger))
        self.config = config or SweepConfig()
        self._reachability_probe = reachability_probe or is_host_reachable
        self._port_probe = port_probe or is_port_open
        self._local_ip_resolver = local_ip_resolver or find_local_private_ipv4
        self._lock = threading.Lock()

    def detect_network(self) -> NetworkInfo:
        """
        Determine the sweep range from the configured or detected local address.

        Returns:
            NetworkInfo describing the host and its /24

        Raises:
            InterfaceNotFoundError: If no private IPv4 address is available
        """
        if self.config.local_ip:
            if not is_valid_ip(self.config.local_ip):
                raise InterfaceNotFoundError(
                    f"Configured local_ip is not an IPv4 address: {self.config.local_ip}",
                    self._interface_context(),
                )
            interface_name, host_ip = self.config.interface or "configured", self.config.local_ip
        else:
            found = self._local_ip_resolver(self.config.interface)
            if found is None:
                raise InterfaceNotFoundError(
                    "No private IPv4 address found on any active interface",
                    self._interface_context(),
                )
            interface_name, host_ip = found

        return NetworkInfo(
            host_ip=host_ip,
            interface_name=interface_name,
            network_prefix=network_prefix(host_ip),
            scan_range=subnet_candidates(host_ip),
        )

    def scan(self, sink: Optional[ObservationSink] = None) -> ScanResult:
        """
        Sweep the local subnet.

        Args:
            sink: Callable invoked with each scan hit as soon as it is found

        Returns:
            ScanResult with one observation per host that answered on a speaker port
        """
        self._start_scan_timer()

        try:
            network_info = self.detect_network()
        except InterfaceNotFoundError as e:
            error = self.error_handler.handle_error(e, e.error_context)
            self._log_warning("Skipping subnet sweep")
            return ScanResult(
                strategy=self.strategy,
                scan_status=ScanStatus.SKIPPED,
                scan_duration=self._end_scan_timer(),
                errors=[error],
            )

        targets = network_info.scan_range
        self._log_info(
            f"Starting subnet sweep of {network_info.network_prefix}.0/24 "
            f"from {network_info.host_ip} ({network_info.interface_name}), "
            f"{len(targets)} hosts, {self.config.max_parallel} parallel"
        )

        observations: List[DeviceObservation] = []
        errors: List[str] = []

        with ThreadPoolExecutor(max_workers=self.config.max_parallel) as executor:
            future_to_target = {
                executor.submit(self._probe_host, target): target
                for target in targets
            }

            for future in as_completed(future_to_target):
                target = future_to_target[future]
                try:
                    observation = future.result()
                except Exception as e:
                    context = ErrorContext(
                        error_type=ErrorType.NETWORK_ERROR,
                        severity=ErrorSeverity.LOW,
                        operation="probe_host",
                        component="NetworkSweeper",
                        additional_info={"target": target},
                    )
                    errors.append(self.error_handler.handle_error(e, context))
                    continue

                if observation is not None:
                    with self._lock:
                        self._emit(observation, observations, sink)

        scan_duration = self._end_scan_timer()
        self._log_info(
            f"Subnet sweep completed. Found {len(observations)} candidate speakers "
            f"in {scan_duration:.2f} seconds"
        )

        return ScanResult(
            strategy=self.strategy,
            scan_status=ScanStatus.COMPLETED,
            observations=observations,
            scan_duration=scan_duration,
            errors=errors,
            metadata={
                "host_ip": network_info.host_ip,
                "interface": network_info.interface_name,
                "network": f"{network_info.network_prefix}.0/24",
                "targets_scanned": len(targets),
                "max_parallel": self.config.max_parallel,
                "ports": list(self.config.ports),
            },
        )

    def _probe_host(self, ip_address: str) -> Optional[DeviceObservation]:
        """
        Probe one candidate host.

        Returns:
            A SCAN observation for the first open speaker port, or None
        """
        if not self._reachability_probe(ip_address, self.config.reachability_timeout,
                                        self.config.reachability_ports):
            return None

        for port in self.config.ports:
            if self._port_probe(ip_address, port, self.config.port_timeout):
                self._log_debug(f"{ip_address} answered on port {port}")
                return observation_from_scan_hit(ip_address, port)

        return None

    def _interface_context(self) -> ErrorContext:
        return ErrorContext(
            error_type=ErrorType.INTERFACE_ERROR,
            severity=ErrorSeverity.MEDIUM,
            operation="detect_network",
            component="NetworkSweeper",
            additional_info={"interface": self.config.interface},
        )
