"""
Tests for pool construction, spot price and swap simulation.
"""

from fractions import Fraction

import pytest

from cfmm_sync.pools import (
    ConcentratedLiquidityPool,
    ConstantProductPool,
    InsufficientLiquidity,
    InvalidPool,
    Overflow,
    apply_swap,
    build_swap_description,
    direction_for,
    simulate_swap,
    spot_price,
)
from cfmm_sync.pools.types import MAX_UINT112
from cfmm_sync.pools.v3_math import MAX_UINT256, Q96
from testing_support import address

TOKEN_A = address(0x1000)
TOKEN_B = address(0x2000)
PAIR = address(0xA1)
DEX_ID = "constant_product:0xf2"


def make_pair(reserve0=1000, reserve1=2000, fee_bps=30, **kwargs):
    return ConstantProductPool(
        address=PAIR,
        token0=TOKEN_A,
        token1=TOKEN_B,
        dex_id=DEX_ID,
        reserve0=reserve0,
        reserve1=reserve1,
        fee_bps=fee_bps,
        **kwargs,
    )


def make_cl_pool(liquidity=10**18, ticks=None, fee_pips=3000, sqrt_price_x96=Q96, **kwargs):
    return ConcentratedLiquidityPool(
        address=address(0xC1),
        token0=TOKEN_A,
        token1=TOKEN_B,
        dex_id="concentrated_liquidity:0xf3",
        sqrt_price_x96=sqrt_price_x96,
        tick=0,
        liquidity=liquidity,
        fee_pips=fee_pips,
        tick_spacing=60,
        initialized_ticks={-60: liquidity, 60: -liquidity} if ticks is None else ticks,
        **kwargs,
    )


class TestPoolValidation:
    """Construction-time checks on pool fields."""

    def test_identical_tokens_rejected(self):
        with pytest.raises(InvalidPool):
            ConstantProductPool(PAIR, TOKEN_A, TOKEN_A, DEX_ID, 1, 1)

    def test_tokens_must_be_canonically_ordered(self):
        with pytest.raises(InvalidPool):
            ConstantProductPool(PAIR, TOKEN_B, TOKEN_A, DEX_ID, 1, 1)

    def test_negative_reserve_rejected(self):
        with pytest.raises(InvalidPool):
            make_pair(reserve0=-1)

    def test_reserve_above_uint112_rejected(self):
        with pytest.raises(InvalidPool):
            make_pair(reserve1=MAX_UINT112 + 1)

    def test_float_reserve_rejected(self):
        with pytest.raises(InvalidPool):
            make_pair(reserve0=1000.0)

    def test_decimals_out_of_range_rejected(self):
        with pytest.raises(InvalidPool):
            make_pair(decimals0=256)

    def test_cl_pool_requires_positive_tick_spacing(self):
        with pytest.raises(InvalidPool):
            ConcentratedLiquidityPool(
                address(0xC1), TOKEN_A, TOKEN_B, "concentrated_liquidity:0xf3",
                sqrt_price_x96=Q96, tick=0, liquidity=1, fee_pips=3000, tick_spacing=0,
            )

    def test_cl_pool_sqrt_price_out_of_range_rejected(self):
        with pytest.raises(InvalidPool):
            make_cl_pool(sqrt_price_x96=1)


class TestSpotPrice:
    """Spot price is exact and decimal adjusted."""

    def test_constant_product_price(self):
        assert spot_price(make_pair()) == Fraction(2)

    def test_decimal_adjustment(self):
        pool = make_pair(reserve0=10**6, reserve1=2 * 10**18, decimals0=6, decimals1=18)
        assert spot_price(pool) == Fraction(2)

    def test_deterministic(self):
        assert spot_price(make_pair()) == spot_price(make_pair())

    def test_empty_reserve_has_no_price(self):
        with pytest.raises(InsufficientLiquidity):
            spot_price(make_pair(reserve0=0))

    def test_concentrated_liquidity_price_at_tick_zero(self):
        assert spot_price(make_cl_pool()) == Fraction(1)


class TestConstantProductSwap:
    """Exact-input swaps on x * y = k pools."""

    def test_reference_swap(self):
        assert simulate_swap(make_pair(), 100, zero_for_one=True) == 181

    def test_reverse_direction(self):
        # 100 * 9970 * 1000 // (2000 * 10000 + 100 * 9970)
        assert simulate_swap(make_pair(), 100, zero_for_one=False) == 47

    def test_output_never_exceeds_reserve(self):
        pool = make_pair()
        assert simulate_swap(pool, 10**20, zero_for_one=True) < pool.reserve1

    def test_higher_fee_never_increases_output(self):
        outputs = [simulate_swap(make_pair(fee_bps=fee), 10_000, True) for fee in (0, 5, 30, 100, 1000)]
        assert outputs == sorted(outputs, reverse=True)

    def test_zero_amount_rejected(self):
        with pytest.raises(ValueError):
            simulate_swap(make_pair(), 0, True)

    def test_non_integer_amount_rejected(self):
        with pytest.raises(TypeError):
            simulate_swap(make_pair(), 1.5, True)

    def test_empty_reserve_raises(self):
        with pytest.raises(InsufficientLiquidity):
            simulate_swap(make_pair(reserve1=0), 100, True)

    def test_reserve_overflow(self):
        with pytest.raises(Overflow):
            simulate_swap(make_pair(reserve0=MAX_UINT112 - 10), 100, True)

    def test_amount_above_uint256(self):
        with pytest.raises(Overflow):
            simulate_swap(make_pair(), MAX_UINT256 + 1, True)


class TestConcentratedLiquiditySwap:
    """Tick-walking swaps on concentrated liquidity pools."""

    def test_small_swap_within_range(self):
        out = simulate_swap(make_cl_pool(), 10**6, zero_for_one=True)
        assert 996_990 < out < 997_000

    def test_both_directions_symmetric_at_unit_price(self):
        pool = make_cl_pool()
        assert simulate_swap(pool, 10**6, True) == pytest.approx(simulate_swap(pool, 10**6, False), abs=2)

    def test_exhausting_ticks_raises(self):
        with pytest.raises(InsufficientLiquidity) as exc_info:
            simulate_swap(make_cl_pool(), 10**30, zero_for_one=True)
        assert exc_info.value.amount_remaining > 0

    def test_no_initialized_ticks_raises(self):
        with pytest.raises(InsufficientLiquidity):
            simulate_swap(make_cl_pool(ticks={}), 10**6, zero_for_one=False)

    def test_price_limit_stops_swap(self):
        pool = make_cl_pool()
        unlimited = simulate_swap(pool, 10**15, zero_for_one=True)
        limited = simulate_swap(pool, 10**15, zero_for_one=True, sqrt_price_limit_x96=Q96 - 10**20)
        assert limited < unlimited

    def test_price_limit_on_wrong_side_rejected(self):
        with pytest.raises(ValueError):
            simulate_swap(make_cl_pool(), 10**6, zero_for_one=True, sqrt_price_limit_x96=Q96 + 1)

    def test_crossing_into_negative_liquidity_is_invalid(self):
        pool = make_cl_pool(ticks={-60: 2 * 10**18, 60: -(10**18)})
        with pytest.raises(InvalidPool):
            simulate_swap(pool, 10**30, zero_for_one=True)

    def test_fee_in_basis_points(self):
        assert make_cl_pool().fee_bps == 30


def swap_there_and_back(pool, amount_in, zero_for_one):
    """Sell amount_in, then sell the proceeds back through the updated pool."""
    amount_out, updated = apply_swap(pool, amount_in, zero_for_one)
    if amount_out == 0:
        return 0
    returned, _ = apply_swap(updated, amount_out, not zero_for_one)
    return returned


# Two overlapping positions so larger swaps cross initialized ticks
WIDE_TICKS = {-6000: 10**18, -60: 10**18, 60: -(10**18), 6000: -(10**18)}


class TestFeeMonotonicity:
    """A round trip through a pool never returns more than was put in."""

    @pytest.mark.parametrize("fee_bps", [0, 30, 9999])
    @pytest.mark.parametrize("reserves", [(1000, 2000), (10**18, 3 * 10**9), (7, 10**24)])
    @pytest.mark.parametrize("amount_in", [1, 997, 10**9, 10**20])
    @pytest.mark.parametrize("zero_for_one", [True, False])
    def test_constant_product_round_trip(self, fee_bps, reserves, amount_in, zero_for_one):
        pool = make_pair(reserve0=reserves[0], reserve1=reserves[1], fee_bps=fee_bps)
        assert swap_there_and_back(pool, amount_in, zero_for_one) <= amount_in

    @pytest.mark.parametrize("fee_pips", [0, 3000, 999900])
    @pytest.mark.parametrize("amount_in", [1, 10**6, 10**15, 10**17])
    @pytest.mark.parametrize("zero_for_one", [True, False])
    def test_concentrated_liquidity_round_trip(self, fee_pips, amount_in, zero_for_one):
        pool = make_cl_pool(liquidity=2 * 10**18, ticks=WIDE_TICKS, fee_pips=fee_pips)
        assert swap_there_and_back(pool, amount_in, zero_for_one) <= amount_in

    def test_constant_product_updated_reserves_keep_the_fee(self):
        pool = make_pair(reserve0=10**6, reserve1=10**6, fee_bps=30)
        amount_out, updated = apply_swap(pool, 10**4, True)
        assert updated.reserve0 == 10**6 + 10**4
        assert updated.reserve1 == 10**6 - amount_out
        assert updated.reserve0 * updated.reserve1 > pool.reserve0 * pool.reserve1

    def test_crossing_a_tick_updates_liquidity(self):
        pool = make_cl_pool(liquidity=2 * 10**18, ticks=WIDE_TICKS)
        amount_out, updated = apply_swap(pool, 10**17, True)
        assert amount_out == simulate_swap(pool, 10**17, True)
        assert updated.tick < -60
        assert updated.liquidity == 10**18
        assert updated.sqrt_price_x96 < pool.sqrt_price_x96


class TestSwapDescription:
    """Preparing swaps for submission."""

    def test_minimum_output_applies_slippage(self):
        swap = build_swap_description(make_pair(), TOKEN_A, 100, slippage_bps=50, deadline=1_700_000_000)
        assert swap.token_in == TOKEN_A
        assert swap.token_out == TOKEN_B
        assert swap.minimum_amount_out == 180
        assert swap.dex_id == DEX_ID

    def test_direction_from_token(self):
        pool = make_pair()
        assert direction_for(pool, TOKEN_A.lower()) is True
        assert direction_for(pool, TOKEN_B) is False

    def test_unknown_token_rejected(self):
        with pytest.raises(ValueError):
            build_swap_description(make_pair(), address(0x3000), 100, 50, 0)

    def test_invalid_slippage_rejected(self):
        with pytest.raises(ValueError):
            build_swap_description(make_pair(), TOKEN_A, 100, 10_000, 0)
