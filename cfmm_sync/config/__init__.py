"""
Configuration management for cfmm-sync.

This module provides centralized configuration management for the sync
engine. Use get_config() to access all configuration settings.

Example:
    from cfmm_sync.config import get_config

    config = get_config()

    # Access chain settings
    ethereum_rpc = config.chains.get_rpc_url("ethereum")

    # Access protocol settings
    v3_factories = config.protocols.get_factories("uniswap_v3", "ethereum")

    # Access throttle / batching settings
    rate = config.sync.MAX_REQUESTS_PER_SECOND
"""

from .base import BaseConfig, ConfigError
from .chains import MULTICALL3_ADDRESS, ChainConfig, ChainSettings
from .manager import ConfigManager, get_config, reload_config
from .protocols import FactoryDeployment, ProtocolConfig
from .sync import SyncConfig

__all__ = [
    "BaseConfig",
    "ConfigError",
    "ChainConfig",
    "ChainSettings",
    "MULTICALL3_ADDRESS",
    "ProtocolConfig",
    "FactoryDeployment",
    "SyncConfig",
    "ConfigManager",
    "get_config",
    "reload_config",
]
