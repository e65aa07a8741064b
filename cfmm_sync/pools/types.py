"""
Core pool types.

Pools are a tagged variant over the two supported protocol families. Each
pool carries its ``variant`` so math and decoding dispatch on the tag rather
than on a class hierarchy, and references its Dex only through ``dex_id``.
"""

from dataclasses import dataclass, field
from enum import Enum
from fractions import Fraction
from typing import Dict, Optional, Union

from .errors import InvalidPool
from .v3_math import FEE_DENOMINATOR, MAX_SQRT_RATIO, MAX_TICK, MIN_SQRT_RATIO, MIN_TICK

MAX_UINT112 = 2**112 - 1
MAX_UINT128 = 2**128 - 1
BPS_DENOMINATOR = 10_000


class DexVariant(Enum):
    """Supported pricing-curve families."""

    CONSTANT_PRODUCT = "constant_product"
    CONCENTRATED_LIQUIDITY = "concentrated_liquidity"


def address_key(address: str) -> int:
    """Numeric value of a hex address, used for canonical token ordering."""
    try:
        return int(address, 16)
    except (TypeError, ValueError):
        raise InvalidPool(f"Invalid address: {address!r}")


def _require_uint(name: str, value, address: str, upper: Optional[int] = None) -> None:
    # bool is an int subclass and floats would silently lose precision
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidPool(f"{name} must be an integer, got {type(value).__name__}", address)
    if value < 0:
        raise InvalidPool(f"{name} must be non-negative, got {value}", address)
    if upper is not None and value > upper:
        raise InvalidPool(f"{name} {value} exceeds {upper}", address)


def _validate_identity(pool) -> None:
    if not pool.address:
        raise InvalidPool("Pool address is required")
    if address_key(pool.token0) == address_key(pool.token1):
        raise InvalidPool(f"token0 == token1 ({pool.token0})", pool.address)
    if address_key(pool.token0) > address_key(pool.token1):
        raise InvalidPool(
            f"Tokens not in canonical order: {pool.token0} > {pool.token1}", pool.address
        )
    for name in ("decimals0", "decimals1"):
        _require_uint(name, getattr(pool, name), pool.address, upper=255)


@dataclass(frozen=True)
class ConstantProductPool:
    """
    Constant product (x * y = k) pool state.

    Attributes:
        address: Pair contract address
        token0: Lower-ordered token address
        token1: Higher-ordered token address
        dex_id: Registry key of the owning Dex
        reserve0: Reserve of token0 in its smallest unit
        reserve1: Reserve of token1 in its smallest unit
        fee_bps: Swap fee taken on input, in basis points
        decimals0: token0 decimals
        decimals1: token1 decimals
        block_number: Block the state was read at (optional)
    """

    address: str
    token0: str
    token1: str
    dex_id: str
    reserve0: int
    reserve1: int
    fee_bps: int = 30
    decimals0: int = 18
    decimals1: int = 18
    block_number: Optional[int] = None

    variant = DexVariant.CONSTANT_PRODUCT

    def __post_init__(self):
        _validate_identity(self)
        _require_uint("reserve0", self.reserve0, self.address, upper=MAX_UINT112)
        _require_uint("reserve1", self.reserve1, self.address, upper=MAX_UINT112)
        _require_uint("fee_bps", self.fee_bps, self.address, upper=BPS_DENOMINATOR - 1)


@dataclass(frozen=True)
class ConcentratedLiquidityPool:
    """
    Concentrated liquidity pool state.

    Attributes:
        sqrt_price_x96: Current sqrt(price) * 2^96
        tick: Current tick index
        liquidity: In-range liquidity
        fee_pips: Swap fee in pips (e.g. 3000 for 0.3%)
        tick_spacing: Tick spacing of the fee tier
        initialized_ticks: tick index -> net liquidity delta when crossed upward
    """

    address: str
    token0: str
    token1: str
    dex_id: str
    sqrt_price_x96: int
    tick: int
    liquidity: int
    fee_pips: int
    tick_spacing: int
    initialized_ticks: Dict[int, int] = field(default_factory=dict)
    decimals0: int = 18
    decimals1: int = 18
    block_number: Optional[int] = None

    variant = DexVariant.CONCENTRATED_LIQUIDITY

    def __post_init__(self):
        _validate_identity(self)
        _require_uint("liquidity", self.liquidity, self.address, upper=MAX_UINT128)
        _require_uint("fee_pips", self.fee_pips, self.address, upper=FEE_DENOMINATOR - 1)
        _require_uint("sqrt_price_x96", self.sqrt_price_x96, self.address)
        if not MIN_SQRT_RATIO <= self.sqrt_price_x96 < MAX_SQRT_RATIO:
            raise InvalidPool(f"sqrt_price_x96 {self.sqrt_price_x96} out of range", self.address)
        if isinstance(self.tick, bool) or not isinstance(self.tick, int):
            raise InvalidPool("tick must be an integer", self.address)
        if not MIN_TICK <= self.tick <= MAX_TICK:
            raise InvalidPool(f"tick {self.tick} out of range", self.address)
        if isinstance(self.tick_spacing, bool) or not isinstance(self.tick_spacing, int) \
                or self.tick_spacing <= 0:
            raise InvalidPool(f"Invalid tick_spacing: {self.tick_spacing!r}", self.address)
        for tick, net in self.initialized_ticks.items():
            if not isinstance(tick, int) or not isinstance(net, int) or isinstance(net, bool):
                raise InvalidPool(f"Malformed tick entry {tick!r}: {net!r}", self.address)

    @property
    def fee_bps(self) -> Fraction:
        """Fee in basis points (exact; 3000 pips -> 30 bps)."""
        return Fraction(self.fee_pips, 100)


Pool = Union[ConstantProductPool, ConcentratedLiquidityPool]


@dataclass(frozen=True)
class SwapDescription:
    """
    Prepared swap for the transaction execution collaborator.

    Signing, gas and submission are handled outside this package.
    """

    pool_address: str
    dex_id: str
    token_in: str
    token_out: str
    amount_in: int
    minimum_amount_out: int
    deadline: int
