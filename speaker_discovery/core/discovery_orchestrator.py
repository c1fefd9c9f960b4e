"""
Discovery Orchestrator for Speaker Discovery Module.

This module provides the DiscoveryOrchestrator class that runs the SSDP probe
and the subnet sweep concurrently on a small strategy pool, feeds every
observation into the DeviceRegistry as it arrives, and exposes the
list/refresh/status-check operations used by callers.
"""

import itertools
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait as wait_futures
from datetime import datetime, UTC
from typing import Dict, List, Optional, Tuple

from .data_models import DeviceObservation, DeviceRecord, DiscoveryStrategy, LookupResult, ScanStatus
from .device_registry import DeviceRegistry
from ..scanners.base_scanner import BaseScanner, ScanResult
from ..utils.error_handler import ErrorContext, ErrorHandler, ErrorSeverity, ErrorType
from ..utils.logger import Logger, get_logger


class DiscoveryRun:
    """
    Handle for one discovery launch.

    Every strategy of the launch runs under a supervisor, so the futures held
    here always resolve to a ScanResult and never to an exception.
    """

    def __init__(self, run_id: int, futures: Dict[DiscoveryStrategy, Future]):
        self.run_id = run_id
        self.started_at = datetime.now(UTC)
        self._futures = futures

    @property
    def strategies(self) -> List[DiscoveryStrategy]:
        return list(self._futures)

    def done(self) -> bool:
        """True once every strategy of this run has finished."""
        return all(future.done() for future in self._futures.values())

    def wait(self, timeout: Optional[float] = None) -> Dict[DiscoveryStrategy, ScanResult]:
        """
        Block until the run finishes or the timeout elapses.

        Args:
            timeout: Maximum seconds to wait (None waits indefinitely)

        Returns:
            ScanResults of the strategies that finished, keyed by strategy
        """
        wait_futures(list(self._futures.values()), timeout=timeout)
        return self.results()

    def results(self) -> Dict[DiscoveryStrategy, ScanResult]:
        return {
            strategy: future.result()
            for strategy, future in self._futures.items()
            if future.done()
        }


class DiscoveryOrchestrator:
    """
    Runs the discovery strategies and owns the registry they feed.

    start() and refresh() return immediately; in-flight runs are never
    cancelled. check_status() is synchronous and independent of the
    strategy pool.
    """

    def __init__(self, registry: DeviceRegistry, ssdp_probe: Optional[BaseScanner] = None,
                 network_sweeper: Optional[BaseScanner] = None, logger: Optional[Logger] = None,
                 error_handler: Optional[ErrorHandler] = None, max_workers: int = 4):
        """
        Initialize the orchestrator.

        Args:
            registry: DeviceRegistry receiving every observation
            ssdp_probe: SSDP strategy (disabled when None)
            network_sweeper: Subnet sweep strategy (disabled when None)
            logger: Logger instance
            error_handler: ErrorHandler used to report contained strategy failures
            max_workers: Size of the strategy pool
        """
        self.registry = registry
        self.logger = logger or get_logger(__name__)
        self.error_handler = error_handler or ErrorHandler(self.logger)
        self.strategies: List[BaseScanner] = [
            strategy for strategy in (ssdp_probe, network_sweeper) if strategy is not None
        ]

        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="discovery")
        self._run_ids = itertools.count(1)
        self._lock = threading.Lock()
        self._latest_run: Optional[DiscoveryRun] = None

    @property
    def latest_run(self) -> Optional[DiscoveryRun]:
        with self._lock:
            return self._latest_run

    def start(self) -> DiscoveryRun:
        """
        Launch every configured strategy concurrently.

        Returns:
            DiscoveryRun handle for the launch
        """
        with self._lock:
            run_id = next(self._run_ids)
            futures = {
                strategy.strategy: self._executor.submit(self._supervise, strategy, run_id)
                for strategy in self.strategies
            }
            run = DiscoveryRun(run_id, futures)
            self._latest_run = run

        names = ", ".join(s.value for s in futures) or "none"
        self.logger.info(f"Discovery run #{run_id} started", strategies=names)
        return run

    def refresh(self) -> DiscoveryRun:
        """
        Clear the working snapshot and relaunch discovery.

        The store keeps its records. Returns without waiting; listing right
        after a refresh shows only what the new run has found so far.
        """
        self.logger.info("Refreshing speaker list")
        self.registry.clear_snapshot()
        return self.start()

    def check_status(self, ip_address: str) -> bool:
        return self.registry.status_check(ip_address)

    def list_devices(self) -> Tuple[DeviceRecord, ...]:
        return self.registry.list()

    def get_device(self, identity_key: str) -> LookupResult:
        return self.registry.get(identity_key)

    def shutdown(self, wait: bool = True) -> None:
        """
        Stop accepting new runs.

        Args:
            wait: Block until in-flight strategies finish
        """
        self.logger.debug("Shutting down discovery pool")
        self._executor.shutdown(wait=wait)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()

    def _supervise(self, strategy: BaseScanner, run_id: int) -> ScanResult:
        """Run one strategy, containing any exception it raises."""
        try:
            result = strategy.scan(sink=self._merge_observation)
        except Exception as e:
            context = ErrorContext(
                error_type=ErrorType.STRATEGY_ERROR,
                severity=ErrorSeverity.CRITICAL,
                operation="scan",
                component=type(strategy).__name__,
                additional_info={"run_id": run_id},
            )
            error = self.error_handler.handle_error(e, context)
            return ScanResult(
                strategy=strategy.strategy,
                scan_status=ScanStatus.FAILED,
                errors=[error],
            )

        self.logger.debug(
            f"Run #{run_id} {strategy.strategy.value} finished: {result.scan_status.value}, "
            f"{len(result.observations)} observations"
        )
        return result

    def _merge_observation(self, observation: DeviceObservation) -> None:
        try:
            self.registry.merge(observation)
        except Exception as e:
            context = ErrorContext(
                error_type=ErrorType.STRATEGY_ERROR,
                severity=ErrorSeverity.MEDIUM,
                operation="merge",
                component="DeviceRegistry",
                additional_info={"ip": observation.source_ip},
            )
            self.error_handler.handle_error(e, context)
