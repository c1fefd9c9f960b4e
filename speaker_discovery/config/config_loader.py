"""
Configuration loader for Speaker Discovery Module.
Handles loading and validation of YAML configuration files with fallback to defaults.
"""

import os
import yaml
from typing import Any, List, Optional
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from ..utils.logger import Logger, get_logger


@dataclass
class SSDPConfig:
    """Configuration for the SSDP multicast probe."""
    multicast_address: str = "239.255.255.250"
    port: int = 1900
    mx: int = 3
    ttl: int = 4
    search_target: str = "urn:schemas-upnp-org:device:MediaRenderer:1"
    listen_window: float = 5.0
    vendor_tokens: List[str] = field(default_factory=lambda: ["samsung", "multiroom"])
    buffer_size: int = 8192


@dataclass
class SweepConfig:
    """Configuration for the local subnet sweep."""
    ports: List[int] = field(default_factory=lambda: [80, 8080, 49152, 49153, 49154])
    reachability_ports: List[int] = field(default_factory=lambda: [80, 443])
    reachability_timeout: float = 0.5
    port_timeout: float = 1.0
    max_parallel: int = 10
    interface: Optional[str] = None
    local_ip: Optional[str] = None


@dataclass
class StoreConfig:
    """Configuration for the persistent speaker store."""
    backend: str = "memory"  # memory, mongodb
    connection_string: str = "mongodb://localhost:27017"
    database_name: str = "multiroom"
    collection: str = "speakers"


class ConfigLoader:
    """
    Loads and validates YAML configuration files for speaker discovery.
    Provides fallback to default configurations when files are missing.
    """

    VALID_BACKENDS = ("memory", "mongodb")

    def __init__(self, config_dir: Optional[str] = None, logger: Optional[Logger] = None):
        """
        Initialize ConfigLoader.

        Args:
            config_dir: Directory containing configuration files.
                       Defaults to the config directory relative to this file.
            logger: Logger instance (optional)
        """
        if config_dir is None:
            self.config_dir = Path(__file__).parent
        else:
            self.config_dir = Path(config_dir)

        self.logger = logger or get_logger(__name__)

    def _read_section(self, config_file: str, section: str) -> Optional[dict]:
        """
        Read one top-level section of a YAML file.

        Returns:
            The section dictionary, or None when the file is missing or invalid
        """
        config_path = self.config_dir / config_file

        if not config_path.exists():
            self.logger.warning(f"Config file not found at {config_path}. Using default configuration.")
            return None

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            self.logger.error(f"Error parsing config file {config_path}: {e}")
            self.logger.warning(f"Using default {section} configuration.")
            return None
        except OSError as e:
            self.logger.error(f"Could not read config file {config_path}: {e}")
            self.logger.warning(f"Using default {section} configuration.")
            return None

        if not isinstance(config_data, dict) or not isinstance(config_data.get(section), dict):
            self.logger.warning(f"Invalid {section} config structure in {config_path}. Using default configuration.")
            return None

        return config_data[section]

    def load_ssdp_config(self, config_file: str = "ssdp_config.yml") -> SSDPConfig:
        """
        Load SSDP probe configuration from YAML file.

        Args:
            config_file: Name of the SSDP configuration file

        Returns:
            SSDPConfig object with loaded or default configuration
        """
        data = self._read_section(config_file, 'ssdp')
        defaults = SSDPConfig()
        if data is None:
            return defaults

        return SSDPConfig(
            multicast_address=str(data.get('multicast_address', defaults.multicast_address)),
            port=self._validate_port(data.get('port', defaults.port), 'port', defaults.port),
            mx=self._validate_positive_int(data.get('mx', defaults.mx), 'mx', defaults.mx),
            ttl=self._validate_positive_int(data.get('ttl', defaults.ttl), 'ttl', defaults.ttl),
            search_target=str(data.get('search_target', defaults.search_target)),
            listen_window=self._validate_positive_float(
                data.get('listen_window', defaults.listen_window), 'listen_window', defaults.listen_window),
            vendor_tokens=self._validate_string_list(
                data.get('vendor_tokens', defaults.vendor_tokens), 'vendor_tokens', defaults.vendor_tokens),
            buffer_size=self._validate_positive_int(
                data.get('buffer_size', defaults.buffer_size), 'buffer_size', defaults.buffer_size),
        )

    def load_sweep_config(self, config_file: str = "sweep_config.yml") -> SweepConfig:
        """
        Load subnet sweep configuration from YAML file.

        Args:
            config_file: Name of the sweep configuration file

        Returns:
            SweepConfig object with loaded or default configuration
        """
        data = self._read_section(config_file, 'sweep')
        defaults = SweepConfig()
        if data is None:
            return defaults

        return SweepConfig(
            ports=self._validate_port_list(data.get('ports', defaults.ports), 'ports', defaults.ports),
            reachability_ports=self._validate_port_list(
                data.get('reachability_ports', defaults.reachability_ports),
                'reachability_ports', defaults.reachability_ports),
            reachability_timeout=self._validate_positive_float(
                data.get('reachability_timeout', defaults.reachability_timeout),
                'reachability_timeout', defaults.reachability_timeout),
            port_timeout=self._validate_positive_float(
                data.get('port_timeout', defaults.port_timeout), 'port_timeout', defaults.port_timeout),
            max_parallel=self._validate_positive_int(
                data.get('max_parallel', defaults.max_parallel), 'max_parallel', defaults.max_parallel),
            interface=data.get('interface'),
            local_ip=data.get('local_ip'),
        )

    def load_store_config(self, config_file: str = "store_config.yml") -> StoreConfig:
        """
        Load store configuration from YAML file and environment.

        Environment variables (also read from a .env file) take precedence:
        SPEAKER_STORE_BACKEND, MONGODB_URI, MONGODB_DATABASE.

        Args:
            config_file: Name of the store configuration file

        Returns:
            StoreConfig object with loaded or default configuration
        """
        load_dotenv()

        data = self._read_section(config_file, 'store') or {}
        defaults = StoreConfig()

        backend = os.getenv('SPEAKER_STORE_BACKEND', data.get('backend', defaults.backend))
        if backend not in self.VALID_BACKENDS:
            self.logger.warning(
                f"Invalid store backend: {backend}. Must be one of {list(self.VALID_BACKENDS)}. "
                f"Using default: {defaults.backend}"
            )
            backend = defaults.backend

        return StoreConfig(
            backend=backend,
            connection_string=os.getenv('MONGODB_URI', data.get('connection_string', defaults.connection_string)),
            database_name=os.getenv('MONGODB_DATABASE', data.get('database_name', defaults.database_name)),
            collection=str(data.get('collection', defaults.collection)),
        )

    def _validate_positive_int(self, value: Any, field_name: str, default: int) -> int:
        """
        Validate that a value is a positive integer.

        Args:
            value: Value to validate
            field_name: Name of the field for error messages
            default: Default value to use if validation fails

        Returns:
            Validated integer value or default
        """
        try:
            int_value = int(value)
            if int_value <= 0:
                self.logger.warning(f"Invalid {field_name}: {value}. Must be positive. Using default: {default}")
                return default
            return int_value
        except (ValueError, TypeError):
            self.logger.warning(f"Invalid {field_name}: {value}. Must be an integer. Using default: {default}")
            return default

    def _validate_positive_float(self, value: Any, field_name: str, default: float) -> float:
        try:
            float_value = float(value)
            if float_value <= 0:
                self.logger.warning(f"Invalid {field_name}: {value}. Must be positive. Using default: {default}")
                return default
            return float_value
        except (ValueError, TypeError):
            self.logger.warning(f"Invalid {field_name}: {value}. Must be a number. Using default: {default}")
            return default

    def _validate_port(self, value: Any, field_name: str, default: int) -> int:
        port = self._validate_positive_int(value, field_name, default)
        if port > 65535:
            self.logger.warning(f"Invalid {field_name}: {value}. Must be <= 65535. Using default: {default}")
            return default
        return port

    def _validate_port_list(self, value: Any, field_name: str, default: List[int]) -> List[int]:
        """
        Validate an ordered list of TCP ports.

        Invalid entries are skipped; an empty result falls back to the default.
        """
        if not isinstance(value, list):
            self.logger.warning(f"Invalid {field_name}: {value}. Must be a list. Using default: {default}")
            return list(default)

        ports = []
        for entry in value:
            if isinstance(entry, int) and 0 < entry <= 65535:
                ports.append(entry)
            else:
                self.logger.warning(f"Invalid port in {field_name}: {entry}. Skipping.")

        if not ports:
            self.logger.warning(f"No valid ports in {field_name}. Using default: {default}")
            return list(default)
        return ports

    def _validate_string_list(self, value: Any, field_name: str, default: List[str]) -> List[str]:
        if not isinstance(value, list) or not all(isinstance(v, str) and v for v in value) or not value:
            self.logger.warning(f"Invalid {field_name}: {value}. Must be a list of strings. Using default: {default}")
            return list(default)
        return list(value)

    def create_default_configs(self) -> None:
        """
        Create default configuration files if they don't exist.
        """
        self._write_default("ssdp_config.yml", {'ssdp': {
            'multicast_address': "239.255.255.250",
            'port': 1900,
            'mx': 3,
            'ttl': 4,
            'search_target': "urn:schemas-upnp-org:device:MediaRenderer:1",
            'listen_window': 5.0,
            'vendor_tokens': ["samsung", "multiroom"],
            'buffer_size': 8192,
        }})
        self._write_default("sweep_config.yml", {'sweep': {
            'ports': [80, 8080, 49152, 49153, 49154],
            'reachability_ports': [80, 443],
            'reachability_timeout': 0.5,
            'port_timeout': 1.0,
            'max_parallel': 10,
            'interface': None,
            'local_ip': None,
        }})
        self._write_default("store_config.yml", {'store': {
            'backend': "memory",
            'connection_string': "mongodb://localhost:27017",
            'database_name': "multiroom",
            'collection': "speakers",
        }})

    def _write_default(self, config_file: str, default_config: dict) -> None:
        config_path = self.config_dir / config_file
        if config_path.exists():
            return

        try:
            with open(config_path, 'w', encoding='utf-8') as f:
                yaml.dump(default_config, f, default_flow_style=False, indent=2, sort_keys=False)
            self.logger.info(f"Created default config at {config_path}")
        except OSError as e:
            self.logger.error(f"Failed to create default config {config_path}: {e}")
