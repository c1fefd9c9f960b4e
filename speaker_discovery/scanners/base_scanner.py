"""
Base scanner interface for Speaker Discovery Module.

This module defines the abstract base class that every discovery strategy
implements, providing a consistent interface for the SSDP probe and the
subnet sweep so the orchestrator can run them polymorphically.
"""

from abc import ABC, abstractmethod
from typing import Callable, List, Dict, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime, UTC

from ..core.data_models import DeviceObservation, DiscoveryStrategy, ScanStatus


# Receives every observation as soon as a strategy produces it
ObservationSink = Callable[[DeviceObservation], Any]


@dataclass
class ScanResult:
    """
    Outcome of one strategy run.

    Attributes:
        strategy: Strategy that produced this result
        scan_status: Status of the scan operation
        observations: Observations emitted during the scan, in emission order
        scan_duration: Time taken to complete the scan in seconds
        errors: List of errors encountered during scanning
        metadata: Additional metadata specific to the strategy
    """
    strategy: DiscoveryStrategy
    scan_status: ScanStatus
    observations: List[DeviceObservation] = field(default_factory=list)
    scan_duration: float = 0.0
    errors: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


class BaseScanner(ABC):
    """
    Abstract base class for all discovery strategies.

    A strategy never raises out of scan(): failures are reported through the
    ErrorHandler and end up in ScanResult.errors.
    """

    strategy: DiscoveryStrategy

    def __init__(self, logger=None, error_handler=None):
        """
        Initialize the base scanner.

        Args:
            logger: Logger instance for outputting scan progress and errors
            error_handler: ErrorHandler instance for centralized error management
        """
        self.logger = logger
        self.error_handler = error_handler
        self.scan_start_time: Optional[datetime] = None
        self.scan_end_time: Optional[datetime] = None

    @abstractmethod
    def scan(self, sink: Optional[ObservationSink] = None) -> ScanResult:
        """
        Execute the strategy once.

        Args:
            sink: Callable invoked with each observation as it is produced

        Returns:
            ScanResult containing the emitted observations and scan metadata
        """
        pass

    def _emit(self, observation: DeviceObservation, observations: List[DeviceObservation],
              sink: Optional[ObservationSink]) -> None:
        """Record an observation and hand it to the sink."""
        observations.append(observation)
        if sink is not None:
            sink(observation)

    def _start_scan_timer(self) -> None:
        """Start the scan timing measurement."""
        self.scan_start_time = datetime.now(UTC)

    def _end_scan_timer(self) -> float:
        """
        End the scan timing measurement and return duration.

        Returns:
            Scan duration in seconds as a float
        """
        self.scan_end_time = datetime.now(UTC)
        if self.scan_start_time:
            return (self.scan_end_time - self.scan_start_time).total_seconds()
        return 0.0

    def _log_info(self, message: str) -> None:
        """Log an info message if logger is available."""
        if self.logger:
            self.logger.info(message)

    def _log_warning(self, message: str) -> None:
        """Log a warning message if logger is available."""
        if self.logger:
            self.logger.warning(message)

    def _log_debug(self, message: str) -> None:
        """Log a debug message if logger is available."""
        if self.logger:
            self.logger.debug(message)
