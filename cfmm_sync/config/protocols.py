"""
Protocol-specific configuration for cfmm-sync.

Every factory the engine scans is listed with its own deployment block, so
discovery for a fork never starts before that fork existed.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from .base import BaseConfig


@dataclass(frozen=True)
class FactoryDeployment:
    """A pool factory contract on one chain."""
    label: str
    address: str
    deployment_block: int
    fee_bps: Optional[int] = None  # constant-product factories only; None uses the default


@dataclass
class ProtocolConfig(BaseConfig):
    """Configuration for supported CFMM protocol families."""

    # Event hashes (standard across chains and forks)
    UNISWAP_V2_PAIR_CREATED_EVENT: str = (
        "0x0d3648bd0f6ba80134a33ba9275ac585d9d315f0ad8355cddefde31afa28d0e9"
    )
    UNISWAP_V3_POOL_CREATED_EVENT: str = (
        "0x783cca1c0412dd0d695e784568c96da2e9c22ff989357a2e8b1d9b2b4e6b7118"
    )

    # Default swap fee for constant product pairs, in basis points
    DEFAULT_V2_FEE_BPS: int = BaseConfig.get_env_int("DEFAULT_V2_FEE_BPS", 30, minimum=0)

    @property
    def v3_fee_tick_spacing(self) -> Dict[int, int]:
        """Fee tier (pips) -> tick spacing."""
        return {
            100: 1,
            500: 10,
            2500: 50,  # PancakeSwap V3
            3000: 60,
            10000: 200,
        }

    @property
    def factories(self) -> Dict[str, Dict[str, List[FactoryDeployment]]]:
        """protocol -> chain -> factory deployments."""
        return {
            "uniswap_v2": {
                "ethereum": [
                    FactoryDeployment("Uniswap V2", "0x5C69bEe701ef814a2B6a3EDD4B1652CB9cc5aA6f", 10000835),
                    FactoryDeployment("SushiSwap V2", "0xC0AEe478e3658e2610c5F7A4A2E1777cE9e4f2Ac", 10794229),
                    FactoryDeployment("PancakeSwap V2", "0x1097053Fd2ea711dad45caCcc45EfF7548fCB362", 15614590, fee_bps=25),
                ],
                "base": [
                    FactoryDeployment("Uniswap V2", "0x8909Dc15e40173Ff4699343b6eB8132c65e18eC6", 6601915),
                ],
                "arbitrum": [
                    FactoryDeployment("Uniswap V2", "0xf1D7CC64Fb4452F05c498126312eBE29f30Fbcf9", 150442611),
                    FactoryDeployment("SushiSwap V2", "0xc35DADB65012eC5796536bD9864eD8773aBc74C4", 70),
                ],
            },
            "uniswap_v3": {
                "ethereum": [
                    FactoryDeployment("Uniswap V3", "0x1F98431c8aD98523631AE4a59f267346ea31F984", 12369621),
                    FactoryDeployment("SushiSwap V3", "0xbACEB8eC6b9355Dfc0269C18bac9d6E2Bdc29C4F", 16955547),
                ],
                "base": [
                    FactoryDeployment("Uniswap V3", "0x33128a8fC17869897dcE68Ed026d694621f6FDfD", 1371680),
                ],
                "arbitrum": [
                    FactoryDeployment("Uniswap V3", "0x1F98431c8aD98523631AE4a59f267346ea31F984", 165),
                ],
            },
        }

    @property
    def supported_protocols(self) -> List[str]:
        return list(self.factories)

    def get_factories(self, protocol: str, chain: str) -> List[FactoryDeployment]:
        """Factories for a protocol on a chain; an unknown chain has none."""
        if protocol not in self.factories:
            raise ValueError(f"Unsupported protocol: {protocol}")
        return list(self.factories[protocol].get(chain, []))
