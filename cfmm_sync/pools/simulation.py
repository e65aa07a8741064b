"""
Pricing and swap simulation over decoded pool state.

All arithmetic is integer or rational; no binary floating point is used so
results can be compared exactly by downstream consumers.
"""

import logging
from bisect import bisect_right
from dataclasses import replace
from fractions import Fraction
from typing import Optional, Tuple

from .errors import InsufficientLiquidity, InvalidPool, Overflow
from .types import (
    BPS_DENOMINATOR,
    MAX_UINT112,
    ConcentratedLiquidityPool,
    ConstantProductPool,
    DexVariant,
    Pool,
    SwapDescription,
    address_key,
)
from .v3_math import (
    MAX_SQRT_RATIO,
    MAX_TICK,
    MAX_UINT256,
    MIN_SQRT_RATIO,
    MIN_TICK,
    Q192,
    compute_swap_step,
    get_sqrt_ratio_at_tick,
    get_tick_at_sqrt_ratio,
)

logger = logging.getLogger(__name__)


def spot_price(pool: Pool) -> Fraction:
    """
    Price of token0 denominated in token1, adjusted for token decimals.

    Args:
        pool: Decoded pool state

    Returns:
        Exact rational price
    """
    scale = Fraction(10 ** pool.decimals0, 10 ** pool.decimals1)

    if pool.variant is DexVariant.CONSTANT_PRODUCT:
        if pool.reserve0 == 0:
            raise InsufficientLiquidity(f"Pool {pool.address} has no token0 reserve")
        return Fraction(pool.reserve1, pool.reserve0) * scale

    if pool.variant is DexVariant.CONCENTRATED_LIQUIDITY:
        return Fraction(pool.sqrt_price_x96 ** 2, Q192) * scale

    raise TypeError(f"Unsupported pool variant: {pool.variant!r}")


def simulate_swap(
    pool: Pool,
    amount_in: int,
    zero_for_one: bool,
    sqrt_price_limit_x96: Optional[int] = None,
) -> int:
    """
    Simulate an exact-input swap and return the output amount.

    Args:
        pool: Decoded pool state
        amount_in: Input amount in the input token's smallest unit
        zero_for_one: True to sell token0 for token1
        sqrt_price_limit_x96: Optional price limit (concentrated liquidity only)

    Returns:
        Output amount in the output token's smallest unit
    """
    amount_out, _ = apply_swap(pool, amount_in, zero_for_one, sqrt_price_limit_x96)
    return amount_out


def apply_swap(
    pool: Pool,
    amount_in: int,
    zero_for_one: bool,
    sqrt_price_limit_x96: Optional[int] = None,
) -> Tuple[int, Pool]:
    """
    Simulate an exact-input swap and return the output with the post-swap pool.

    Constant product reserves keep the full input (fee included); concentrated
    liquidity pools move to the ending price, tick and in-range liquidity.
    """
    if isinstance(amount_in, bool) or not isinstance(amount_in, int):
        raise TypeError("amount_in must be an integer")
    if amount_in <= 0:
        raise ValueError("amount_in must be positive")
    if amount_in > MAX_UINT256:
        raise Overflow(f"amount_in {amount_in} exceeds uint256")

    if pool.variant is DexVariant.CONSTANT_PRODUCT:
        return _constant_product_swap(pool, amount_in, zero_for_one)

    if pool.variant is DexVariant.CONCENTRATED_LIQUIDITY:
        return _concentrated_liquidity_swap(
            pool, amount_in, zero_for_one, sqrt_price_limit_x96
        )

    raise TypeError(f"Unsupported pool variant: {pool.variant!r}")


def _constant_product_swap(
    pool: ConstantProductPool, amount_in: int, zero_for_one: bool
) -> Tuple[int, ConstantProductPool]:
    if zero_for_one:
        reserve_in, reserve_out = pool.reserve0, pool.reserve1
    else:
        reserve_in, reserve_out = pool.reserve1, pool.reserve0

    if reserve_in == 0 or reserve_out == 0:
        raise InsufficientLiquidity(f"Pool {pool.address} has an empty reserve", amount_in)
    if reserve_in + amount_in > MAX_UINT112:
        raise Overflow(f"Reserve would exceed uint112 after adding {amount_in}")

    # out = reserve_out - k / (reserve_in + amount_in * (1 - fee)), rounded down
    amount_in_with_fee = amount_in * (BPS_DENOMINATOR - pool.fee_bps)
    numerator = amount_in_with_fee * reserve_out
    denominator = reserve_in * BPS_DENOMINATOR + amount_in_with_fee
    amount_out = numerator // denominator

    if zero_for_one:
        updated = replace(pool, reserve0=reserve_in + amount_in, reserve1=reserve_out - amount_out)
    else:
        updated = replace(pool, reserve0=reserve_out - amount_out, reserve1=reserve_in + amount_in)
    return amount_out, updated


def _next_initialized_tick(sorted_ticks, tick: int, zero_for_one: bool) -> Optional[int]:
    if zero_for_one:
        # Greatest initialized tick <= current tick
        index = bisect_right(sorted_ticks, tick)
        return sorted_ticks[index - 1] if index > 0 else None
    # Smallest initialized tick > current tick
    index = bisect_right(sorted_ticks, tick)
    return sorted_ticks[index] if index < len(sorted_ticks) else None


def _concentrated_liquidity_swap(
    pool: ConcentratedLiquidityPool,
    amount_in: int,
    zero_for_one: bool,
    sqrt_price_limit_x96: Optional[int],
) -> Tuple[int, ConcentratedLiquidityPool]:
    if sqrt_price_limit_x96 is None:
        sqrt_price_limit_x96 = MIN_SQRT_RATIO + 1 if zero_for_one else MAX_SQRT_RATIO - 1

    if zero_for_one and not MIN_SQRT_RATIO < sqrt_price_limit_x96 < pool.sqrt_price_x96:
        raise ValueError(f"Invalid price limit {sqrt_price_limit_x96} for zero_for_one swap")
    if not zero_for_one and not pool.sqrt_price_x96 < sqrt_price_limit_x96 < MAX_SQRT_RATIO:
        raise ValueError(f"Invalid price limit {sqrt_price_limit_x96} for one_for_zero swap")

    sorted_ticks = sorted(pool.initialized_ticks)
    amount_remaining = amount_in
    amount_out = 0
    sqrt_price = pool.sqrt_price_x96
    tick = pool.tick
    liquidity = pool.liquidity

    while amount_remaining > 0 and sqrt_price != sqrt_price_limit_x96:
        sqrt_price_start = sqrt_price
        tick_next = _next_initialized_tick(sorted_ticks, tick, zero_for_one)
        if tick_next is None:
            raise InsufficientLiquidity(
                f"Ran out of initialized ticks in pool {pool.address} "
                f"with {amount_remaining} of {amount_in} unconsumed",
                amount_remaining,
            )
        tick_next = max(MIN_TICK, tick_next) if zero_for_one else min(MAX_TICK, tick_next)
        sqrt_price_next = get_sqrt_ratio_at_tick(tick_next)

        if (zero_for_one and sqrt_price_next < sqrt_price_limit_x96) or (
            not zero_for_one and sqrt_price_next > sqrt_price_limit_x96
        ):
            sqrt_price_target = sqrt_price_limit_x96
        else:
            sqrt_price_target = sqrt_price_next

        sqrt_price, step_in, step_out, fee_amount = compute_swap_step(
            sqrt_ratio_current_x96=sqrt_price,
            sqrt_ratio_target_x96=sqrt_price_target,
            liquidity=liquidity,
            amount_remaining=amount_remaining,
            fee_pips=pool.fee_pips,
        )
        amount_remaining -= step_in + fee_amount
        amount_out += step_out

        if sqrt_price == sqrt_price_next:
            liquidity_net = pool.initialized_ticks[tick_next]
            liquidity += -liquidity_net if zero_for_one else liquidity_net
            if liquidity < 0:
                raise InvalidPool(
                    f"Negative liquidity after crossing tick {tick_next}", pool.address
                )
            tick = tick_next - 1 if zero_for_one else tick_next
        elif sqrt_price != sqrt_price_start:
            tick = get_tick_at_sqrt_ratio(sqrt_price)

    logger.debug(
        f"Simulated {amount_in} in -> {amount_out} out on {pool.address} "
        f"(ending tick {tick})"
    )
    return amount_out, replace(pool, sqrt_price_x96=sqrt_price, tick=tick, liquidity=liquidity)


def direction_for(pool: Pool, token_in: str) -> bool:
    """Return zero_for_one for a swap selling token_in into the pool."""
    key = address_key(token_in)
    if key == address_key(pool.token0):
        return True
    if key == address_key(pool.token1):
        return False
    raise ValueError(f"Token {token_in} not in pool {pool.address}")


def build_swap_description(
    pool: Pool,
    token_in: str,
    amount_in: int,
    slippage_bps: int,
    deadline: int,
) -> SwapDescription:
    """
    Prepare a swap for submission, with minimum output derived from simulation.

    Args:
        pool: Pool to swap against
        token_in: Address of the token being sold
        amount_in: Input amount
        slippage_bps: Tolerated shortfall from the simulated output
        deadline: Unix timestamp after which the swap must not execute
    """
    if not 0 <= slippage_bps < BPS_DENOMINATOR:
        raise ValueError(f"Invalid slippage_bps: {slippage_bps}")

    zero_for_one = direction_for(pool, token_in)
    amount_out = simulate_swap(pool, amount_in, zero_for_one)
    minimum_amount_out = amount_out * (BPS_DENOMINATOR - slippage_bps) // BPS_DENOMINATOR

    return SwapDescription(
        pool_address=pool.address,
        dex_id=pool.dex_id,
        token_in=pool.token0 if zero_for_one else pool.token1,
        token_out=pool.token1 if zero_for_one else pool.token0,
        amount_in=amount_in,
        minimum_amount_out=minimum_amount_out,
        deadline=deadline,
    )
