"""
Dex descriptors, discovered pool identities and the owning Dex registry.
"""

import logging
from dataclasses import asdict, dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional

from ..config.protocols import ProtocolConfig
from ..pools.types import DexVariant

logger = logging.getLogger(__name__)

PROTOCOL_VARIANTS = {
    "uniswap_v2": DexVariant.CONSTANT_PRODUCT,
    "uniswap_v3": DexVariant.CONCENTRATED_LIQUIDITY,
}


def _freeze_params(params: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    frozen = {}
    for key, value in (params or {}).items():
        if key == "fee_tick_spacing":
            # JSON round trips turn int keys into strings
            value = MappingProxyType({int(fee): int(spacing) for fee, spacing in value.items()})
        frozen[key] = value
    return MappingProxyType(frozen)


@dataclass(frozen=True)
class Dex:
    """
    A protocol family deployment: one factory on one chain.

    Attributes:
        variant: Pricing curve family
        factory_address: Factory contract emitting pool creation events
        creation_block: Block the factory was deployed at (discovery genesis)
        protocol_params: Variant-specific constants (fee_bps for constant
            product, fee_tick_spacing for concentrated liquidity)
    """

    variant: DexVariant
    factory_address: str
    creation_block: int
    protocol_params: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.variant, DexVariant):
            raise ValueError(f"Invalid dex variant: {self.variant!r}")
        if not self.factory_address:
            raise ValueError("factory_address is required")
        if self.creation_block < 0:
            raise ValueError(f"Invalid creation block: {self.creation_block}")
        object.__setattr__(self, "protocol_params", _freeze_params(self.protocol_params))

    def __hash__(self) -> int:
        return hash(self.dex_id)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Dex):
            return NotImplemented
        return (
            self.dex_id == other.dex_id
            and self.creation_block == other.creation_block
            and dict(self.protocol_params) == dict(other.protocol_params)
        )

    @property
    def dex_id(self) -> str:
        """Registry key for this dex."""
        return f"{self.variant.value}:{self.factory_address.lower()}"

    @property
    def fee_bps(self) -> int:
        """Swap fee of constant product pairs."""
        return int(self.protocol_params.get("fee_bps", 30))

    def tick_spacing_for(self, fee: int) -> Optional[int]:
        """Tick spacing of a concentrated liquidity fee tier, if known."""
        return self.protocol_params.get("fee_tick_spacing", {}).get(fee)

    @classmethod
    def constant_product(
        cls, factory_address: str, creation_block: int, fee_bps: int = 30, **params
    ) -> "Dex":
        return cls(
            DexVariant.CONSTANT_PRODUCT,
            factory_address,
            creation_block,
            {"fee_bps": fee_bps, **params},
        )

    @classmethod
    def concentrated_liquidity(
        cls,
        factory_address: str,
        creation_block: int,
        fee_tick_spacing: Optional[Mapping[int, int]] = None,
        **params,
    ) -> "Dex":
        if fee_tick_spacing is None:
            fee_tick_spacing = ProtocolConfig().v3_fee_tick_spacing
        return cls(
            DexVariant.CONCENTRATED_LIQUIDITY,
            factory_address,
            creation_block,
            {"fee_tick_spacing": fee_tick_spacing, **params},
        )


@dataclass(frozen=True)
class PoolIdentity:
    """
    Minimal pool metadata recovered from a creation event.

    Decimals are unknown until the first state fetch and cached afterwards
    so later fetches can skip the token decimals() calls.
    """

    address: str
    token0: str
    token1: str
    dex_id: str
    created_block: int
    log_index: int = 0
    fee: Optional[int] = None
    tick_spacing: Optional[int] = None
    decimals0: Optional[int] = None
    decimals1: Optional[int] = None

    @property
    def has_decimals(self) -> bool:
        return self.decimals0 is not None and self.decimals1 is not None

    def with_decimals(self, decimals0: int, decimals1: int) -> "PoolIdentity":
        return replace(self, decimals0=decimals0, decimals1=decimals1)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PoolIdentity":
        return cls(**data)


class DexRegistry:
    """Owns Dex instances; pools resolve their dex_id back-reference here."""

    def __init__(self, dexes: Optional[List[Dex]] = None):
        self._dexes: Dict[str, Dex] = {}
        for dex in dexes or []:
            self.register(dex)

    def register(self, dex: Dex) -> None:
        if dex.dex_id in self._dexes and self._dexes[dex.dex_id] != dex:
            logger.warning(f"Replacing registered dex {dex.dex_id}")
        self._dexes[dex.dex_id] = dex

    def get(self, dex_id: str) -> Dex:
        try:
            return self._dexes[dex_id]
        except KeyError:
            raise KeyError(f"Unknown dex: {dex_id}")

    def resolve(self, pool) -> Dex:
        """Resolve the Dex a pool or pool identity belongs to."""
        return self.get(pool.dex_id)

    def __contains__(self, dex_id: str) -> bool:
        return dex_id in self._dexes

    def __iter__(self) -> Iterator[Dex]:
        return iter(self._dexes.values())

    def __len__(self) -> int:
        return len(self._dexes)


def dexes_from_config(
    protocols: ProtocolConfig,
    chain: str,
    protocol_names: Optional[List[str]] = None,
) -> List[Dex]:
    """
    Build Dex descriptors for every configured factory on a chain.

    Args:
        protocols: Protocol configuration
        chain: Chain name (ethereum, base, arbitrum)
        protocol_names: Subset of protocols to include (default: all supported)
    """
    dexes = []
    for protocol in protocol_names or protocols.supported_protocols:
        if protocol not in PROTOCOL_VARIANTS:
            raise ValueError(f"Unsupported protocol: {protocol}")

        for factory in protocols.get_factories(protocol, chain):
            if PROTOCOL_VARIANTS[protocol] is DexVariant.CONSTANT_PRODUCT:
                fee_bps = protocols.DEFAULT_V2_FEE_BPS if factory.fee_bps is None else factory.fee_bps
                dex = Dex.constant_product(factory.address, factory.deployment_block, fee_bps=fee_bps)
            else:
                dex = Dex.concentrated_liquidity(
                    factory.address, factory.deployment_block, protocols.v3_fee_tick_spacing
                )
            logger.debug(f"{factory.label} on {chain}: {dex.dex_id} from block {factory.deployment_block}")
            dexes.append(dex)

    logger.info(f"Configured {len(dexes)} dexes on {chain}")
    return dexes
