"""
Chain-specific configuration for cfmm-sync.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List

from .base import BaseConfig, ConfigError

# Multicall3 is deployed at the same address on every supported chain
MULTICALL3_ADDRESS = "0xcA11bde05977b3631167028862bE2a173976CA11"


@dataclass(frozen=True)
class ChainSettings:
    """Connection settings for one chain."""
    name: str
    chain_id: int
    rpc_url: str
    multicall_address: str


@dataclass
class ChainConfig(BaseConfig):
    """RPC endpoints, chain ids and aggregate-call contracts per chain."""

    DEFAULT_CHAIN: str = BaseConfig.get_env("DEFAULT_CHAIN", "ethereum")

    ETHEREUM_RPC_URL: str = BaseConfig.get_env("ETHEREUM_RPC_URL", "http://localhost:8545")
    BASE_RPC_URL: str = BaseConfig.get_env("BASE_RPC_URL", "https://mainnet.base.org")
    ARBITRUM_RPC_URL: str = BaseConfig.get_env("ARBITRUM_RPC_URL", "https://arb1.arbitrum.io/rpc")

    MULTICALL_ADDRESS: str = BaseConfig.get_env_address("MULTICALL_ADDRESS", MULTICALL3_ADDRESS)
    RPC_TIMEOUT_SECONDS: float = BaseConfig.get_env_float("RPC_TIMEOUT_SECONDS", 30.0, minimum=1.0)

    def _validate_config(self):
        super()._validate_config()
        if self.DEFAULT_CHAIN not in self.supported_chains:
            raise ConfigError(f"DEFAULT_CHAIN {self.DEFAULT_CHAIN} is not a supported chain")

    @property
    def chains(self) -> Dict[str, ChainSettings]:
        return {
            "ethereum": ChainSettings("ethereum", 1, self.ETHEREUM_RPC_URL, self.MULTICALL_ADDRESS),
            "base": ChainSettings("base", 8453, self.BASE_RPC_URL, self.MULTICALL_ADDRESS),
            "arbitrum": ChainSettings("arbitrum", 42161, self.ARBITRUM_RPC_URL, self.MULTICALL_ADDRESS),
        }

    @property
    def supported_chains(self) -> List[str]:
        return list(self.chains)

    def get_chain(self, chain_name: str) -> ChainSettings:
        """Get settings for a chain; unknown names raise ValueError."""
        try:
            return self.chains[chain_name]
        except KeyError:
            raise ValueError(f"Unsupported chain: {chain_name}") from None

    def get_rpc_url(self, chain_name: str) -> str:
        return self.get_chain(chain_name).rpc_url

    def get_chain_id(self, chain_name: str) -> int:
        return self.get_chain(chain_name).chain_id

    def get_multicall_address(self, chain_name: str) -> str:
        return self.get_chain(chain_name).multicall_address

    def get_data_directory(self, chain_name: str) -> Path:
        """Directory holding a chain's file checkpoints."""
        return self.DATA_DIR / self.get_chain(chain_name).name
