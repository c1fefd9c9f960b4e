"""
Main entry point for the Speaker Discovery Module.

This module provides the command-line interface for the speaker discovery tool,
including argument parsing, store selection, output rendering, and graceful
shutdown handling.
"""

import argparse
import json
import sys
import signal
from pathlib import Path
from typing import Optional

from speaker_store import InMemorySpeakerStore, MongoSpeakerStore, SpeakerStore, SpeakerStoreError
from speaker_store import setup_logging as setup_store_logging

from .config.config_loader import ConfigLoader, StoreConfig
from .core.device_registry import DeviceRegistry
from .core.discovery_orchestrator import DiscoveryOrchestrator
from .scanners.network_sweeper import NetworkSweeper
from .scanners.ssdp_probe import SSDPProbe
from .utils.error_handler import ConfigurationError, ErrorHandler
from .utils.logger import LogLevel, get_logger, set_log_level


TABLE_HEADERS = ["Name", "IP Address", "Model", "Identity Key", "State"]
TABLE_WIDTHS = [32, 15, 28, 20, 10]


class SpeakerDiscoveryApp:
    """
    Main application class for Speaker Discovery Module.

    Handles CLI interface, wiring of the discovery engine and application lifecycle.
    """

    def __init__(self):
        """Initialize the application."""
        self.logger = get_logger(__name__)
        self.orchestrator: Optional[DiscoveryOrchestrator] = None
        self.store: Optional[SpeakerStore] = None
        self.shutdown_requested = False

        # Register signal handlers for graceful shutdown
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum: int, frame) -> None:
        """
        Handle shutdown signals gracefully.

        Args:
            signum: Signal number
            frame: Current stack frame
        """
        signal_names = {signal.SIGINT: "SIGINT", signal.SIGTERM: "SIGTERM"}
        signal_name = signal_names.get(signum, f"Signal {signum}")

        if not self.shutdown_requested:
            self.logger.warning(f"Received {signal_name} - initiating graceful shutdown...")
            self.shutdown_requested = True
            self._cleanup(wait=False)
            sys.exit(0)
        else:
            self.logger.error("Force shutdown requested - terminating immediately")
            sys.exit(1)

    def _cleanup(self, wait: bool = True) -> None:
        """Stop the strategy pool and close the store."""
        if self.orchestrator is not None:
            self.orchestrator.shutdown(wait=wait)
            self.orchestrator = None
        if isinstance(self.store, MongoSpeakerStore):
            self.store.disconnect()
        self.store = None
        self.logger.debug("Cleanup completed")

    def _validate_config_dir(self, config_dir: Optional[str]) -> str:
        """
        Validate the configuration directory.

        Args:
            config_dir: Configuration directory path

        Returns:
            Absolute path of the directory to use

        Raises:
            ConfigurationError: If the given directory does not exist
        """
        if config_dir:
            config_path = Path(config_dir)
            if not config_path.is_dir():
                raise ConfigurationError(f"Configuration directory does not exist: {config_dir}")
        else:
            config_path = Path(__file__).parent / "config"

        validated = str(config_path.resolve())
        self.logger.debug(f"Using configuration directory: {validated}")
        return validated

    def _create_store(self, store_config: StoreConfig) -> SpeakerStore:
        """
        Create the configured store, falling back to memory when MongoDB is unavailable.

        Args:
            store_config: Store configuration

        Returns:
            Connected store instance
        """
        if store_config.backend != "mongodb":
            self.logger.info("Using in-memory speaker store")
            return InMemorySpeakerStore()

        store = MongoSpeakerStore(
            store_config.connection_string,
            store_config.database_name,
            store_config.collection,
        )
        try:
            store.connect()
        except SpeakerStoreError as e:
            self.logger.error("MongoDB store unavailable", exception=e)
            self.logger.warning("Falling back to in-memory speaker store")
            return InMemorySpeakerStore()

        self.logger.info(f"Using MongoDB speaker store ({store_config.database_name}.{store_config.collection})")
        return store

    def _build_engine(self, args: argparse.Namespace) -> DiscoveryOrchestrator:
        config_loader = ConfigLoader(self._validate_config_dir(args.config_dir), self.logger)
        ssdp_config = config_loader.load_ssdp_config()
        sweep_config = config_loader.load_sweep_config()
        store_config = config_loader.load_store_config()
        if args.store:
            store_config.backend = args.store

        self.store = self._create_store(store_config)
        error_handler = ErrorHandler(self.logger)

        registry = DeviceRegistry(
            self.store,
            logger=get_logger("DeviceRegistry"),
            reachability_timeout=sweep_config.reachability_timeout,
            reachability_ports=sweep_config.reachability_ports,
        )
        ssdp_probe = None if args.no_ssdp else SSDPProbe(
            ssdp_config, get_logger("SSDPProbe"), error_handler
        )
        network_sweeper = None if args.no_sweep else NetworkSweeper(
            sweep_config, get_logger("NetworkSweeper"), error_handler
        )

        return DiscoveryOrchestrator(
            registry,
            ssdp_probe=ssdp_probe,
            network_sweeper=network_sweeper,
            logger=get_logger("DiscoveryOrchestrator"),
            error_handler=error_handler,
        )

    def _print_devices(self, as_json: bool) -> None:
        devices = self.orchestrator.list_devices()

        if as_json:
            print(json.dumps([device.to_dict() for device in devices], indent=2))
            return

        self.logger.section(f"Speakers found: {len(devices)}")
        if not devices:
            self.logger.warning("No speakers found on the local network")
            return

        self.logger.table_header(TABLE_HEADERS, TABLE_WIDTHS)
        for device in devices:
            self.logger.table_row(
                [device.name, device.ip, device.model, device.identity_key, device.state.value],
                TABLE_WIDTHS,
                highlight=device.connected,
            )

    def run(self, args: argparse.Namespace) -> int:
        """
        Run the speaker discovery application.

        Args:
            args: Parsed command line arguments

        Returns:
            int: Exit code (0 for success, non-zero for failure)
        """
        try:
            self.orchestrator = self._build_engine(args)

            if args.check:
                reachable = self.orchestrator.check_status(args.check)
                if args.json:
                    print(json.dumps({"ip": args.check, "reachable": reachable}))
                elif reachable:
                    self.logger.success(f"{args.check} is reachable")
                else:
                    self.logger.warning(f"{args.check} is not reachable")
                return 0 if reachable else 1

            if not self.orchestrator.strategies:
                self.logger.error("Both discovery strategies are disabled")
                return 2

            self.logger.progress_start("Discovering speakers")
            run = self.orchestrator.start()
            results = run.wait()
            self.logger.progress_end("Discovery finished")

            for strategy, result in results.items():
                self.logger.info(
                    f"{strategy.value}: {result.scan_status.value}, "
                    f"{len(result.observations)} observations in {result.scan_duration:.2f}s"
                )

            self._print_devices(args.json)
            return 0

        except KeyboardInterrupt:
            self.logger.warning("Discovery interrupted by user")
            return 130  # Standard exit code for SIGINT
        except Exception as e:
            self.logger.error(f"Speaker discovery failed: {str(e)}", exception=e)
            return 1
        finally:
            self._cleanup()


def create_argument_parser() -> argparse.ArgumentParser:
    """
    Create and configure the command line argument parser.

    Returns:
        argparse.ArgumentParser: Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="speaker_discovery",
        description="Speaker Discovery Module - Find multiroom speakers with SSDP and a subnet sweep",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m speaker_discovery                          # Run one discovery pass
  python -m speaker_discovery --json                   # Print the speaker list as JSON
  python -m speaker_discovery --store mongodb          # Persist speakers in MongoDB
  python -m speaker_discovery --no-sweep               # SSDP only
  python -m speaker_discovery --check 192.168.1.20     # Status check of one speaker
        """
    )

    parser.add_argument(
        "--config-dir",
        type=str,
        help="Directory containing configuration files (ssdp_config.yml, sweep_config.yml, "
             "store_config.yml). Defaults to speaker_discovery/config/"
    )

    parser.add_argument(
        "--store",
        choices=["memory", "mongodb"],
        help="Speaker store backend (overrides store_config.yml and SPEAKER_STORE_BACKEND)"
    )

    parser.add_argument(
        "--check",
        metavar="IP",
        help="Check whether the speaker at IP is reachable instead of running discovery"
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Print results as JSON"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging output"
    )

    parser.add_argument(
        "--log-file",
        metavar="PATH",
        help="Also write store log records to PATH as JSON lines"
    )

    parser.add_argument(
        "--no-ssdp",
        action="store_true",
        help="Disable the SSDP multicast probe"
    )

    parser.add_argument(
        "--no-sweep",
        action="store_true",
        help="Disable the local subnet sweep"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="Speaker Discovery Module 1.0.0"
    )

    return parser


def main(argv=None) -> int:
    """
    Main entry point for the Speaker Discovery Module.

    Returns:
        int: Exit code (0 for success, non-zero for failure)
    """
    # Parse command line arguments
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    # Configure logging level based on debug flag
    if args.debug:
        set_log_level(LogLevel.DEBUG)
    setup_store_logging(level="DEBUG" if args.debug else "WARNING", log_file=args.log_file)

    # Create and run the application
    app = SpeakerDiscoveryApp()
    return app.run(args)


if __name__ == "__main__":
    sys.exit(main())
