"""
Configuration manager for cfmm-sync.

Combines the chain, protocol and sync sections behind one object and a
process-wide get_config() accessor.
"""

import logging
from typing import Any, Dict, Optional

from .base import BaseConfig, ConfigError
from .chains import ChainConfig
from .protocols import ProtocolConfig
from .sync import SyncConfig

logger = logging.getLogger(__name__)


class ConfigManager:
    """
    Centralized access to every configuration section.

    Example:
        config = ConfigManager()
        rpc_url = config.chains.get_rpc_url("ethereum")
        factories = config.protocols.get_factories("uniswap_v3", "ethereum")
    """

    def __init__(self, environment: Optional[str] = None):
        """
        Args:
            environment: Override the environment (local, dev, test, staging, production)
        """
        try:
            overrides = {"ENVIRONMENT": environment} if environment else {}
            self._base_config = BaseConfig(**overrides)
            self._chain_config = ChainConfig(**overrides)
            self._protocol_config = ProtocolConfig(**overrides)
            self._sync_config = SyncConfig(**overrides)
        except ConfigError:
            raise
        except Exception as e:
            logger.error(f"Failed to initialize configuration: {e}")
            raise ConfigError(f"Configuration initialization failed: {e}") from e

        logger.info(f"Configuration initialized for environment: {self.environment}")

    @property
    def environment(self) -> str:
        return self._base_config.ENVIRONMENT

    @property
    def base(self) -> BaseConfig:
        return self._base_config

    @property
    def chains(self) -> ChainConfig:
        return self._chain_config

    @property
    def protocols(self) -> ProtocolConfig:
        return self._protocol_config

    @property
    def sync(self) -> SyncConfig:
        return self._sync_config

    def validate_configuration(self) -> bool:
        """
        Check that every chain has something to sync.

        Returns:
            True if at least one factory is configured per supported chain

        Raises:
            ConfigError: If a supported chain has no factories at all
        """
        for chain in self.chains.supported_chains:
            counts = {
                protocol: len(self.protocols.get_factories(protocol, chain))
                for protocol in self.protocols.supported_protocols
            }
            if not any(counts.values()):
                raise ConfigError(f"No factories configured for {chain}")
            for protocol, count in counts.items():
                if not count:
                    logger.warning(f"No {protocol} factories on {chain}")

        logger.info("Configuration validation successful")
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "environment": self.environment,
            "chains": self.chains.to_dict(),
            "protocols": self.protocols.to_dict(),
            "sync": self.sync.to_dict(),
        }

    def __repr__(self) -> str:
        return f"ConfigManager(environment={self.environment})"


# Global configuration manager instance
_config_manager: Optional[ConfigManager] = None


def get_config(environment: Optional[str] = None, force_reload: bool = False) -> ConfigManager:
    """Get the global configuration manager, creating and validating it on first use."""
    global _config_manager

    if _config_manager is None or force_reload:
        _config_manager = ConfigManager(environment=environment)
        _config_manager.validate_configuration()

    return _config_manager


def reload_config(environment: Optional[str] = None) -> ConfigManager:
    """Rebuild the global configuration manager (e.g. after the environment changed)."""
    return get_config(environment=environment, force_reload=True)
