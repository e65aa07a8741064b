"""
Pool model: typed pool state for each protocol variant and the exact math
operating on it (spot price, swap simulation). No I/O.
"""

from .errors import InsufficientLiquidity, InvalidPool, Overflow, PoolError
from .simulation import apply_swap, build_swap_description, direction_for, simulate_swap, spot_price
from .types import (
    ConcentratedLiquidityPool,
    ConstantProductPool,
    DexVariant,
    Pool,
    SwapDescription,
    address_key,
)

__all__ = [
    'PoolError',
    'InvalidPool',
    'InsufficientLiquidity',
    'Overflow',
    'DexVariant',
    'ConstantProductPool',
    'ConcentratedLiquidityPool',
    'Pool',
    'SwapDescription',
    'address_key',
    'spot_price',
    'simulate_swap',
    'apply_swap',
    'direction_for',
    'build_swap_description',
]
