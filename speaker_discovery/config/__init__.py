"""
Configuration module for Speaker Discovery.
Provides configuration loading and validation for the probes and the store.
"""

from .config_loader import ConfigLoader, SSDPConfig, SweepConfig, StoreConfig

__all__ = ['ConfigLoader', 'SSDPConfig', 'SweepConfig', 'StoreConfig']
