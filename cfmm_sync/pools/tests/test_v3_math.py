import pytest

from cfmm_sync.pools.v3_math import (
    MAX_SQRT_RATIO,
    MAX_TICK,
    MIN_SQRT_RATIO,
    MIN_TICK,
    Q96,
    compute_swap_step,
    get_amount0_delta,
    get_amount1_delta,
    get_sqrt_ratio_at_tick,
    get_tick_at_sqrt_ratio,
)


class TestTickMath:
    """Tick <-> sqrt price conversions."""

    def test_tick_zero_is_unit_price(self):
        assert get_sqrt_ratio_at_tick(0) == Q96

    def test_bounds(self):
        assert get_sqrt_ratio_at_tick(MIN_TICK) == MIN_SQRT_RATIO
        assert get_sqrt_ratio_at_tick(MAX_TICK) == MAX_SQRT_RATIO

    def test_out_of_range_tick(self):
        with pytest.raises(ValueError):
            get_sqrt_ratio_at_tick(MAX_TICK + 1)

    @pytest.mark.parametrize("tick", [-887000, -60, -1, 0, 1, 60, 200_000])
    def test_tick_round_trip(self, tick):
        assert get_tick_at_sqrt_ratio(get_sqrt_ratio_at_tick(tick)) == tick

    def test_monotonic(self):
        ratios = [get_sqrt_ratio_at_tick(t) for t in range(-300, 301, 60)]
        assert ratios == sorted(ratios)

    def test_sqrt_ratio_out_of_range(self):
        with pytest.raises(ValueError):
            get_tick_at_sqrt_ratio(MAX_SQRT_RATIO)


class TestSwapStep:
    """Single-range swap step."""

    def test_amount_deltas_round_up_not_below_round_down(self):
        a, b = get_sqrt_ratio_at_tick(-60), get_sqrt_ratio_at_tick(60)
        for delta in (get_amount0_delta, get_amount1_delta):
            up = delta(sqrt_ratio_a_x96=a, sqrt_ratio_b_x96=b, liquidity=10**18, round_up=True)
            down = delta(sqrt_ratio_a_x96=a, sqrt_ratio_b_x96=b, liquidity=10**18, round_up=False)
            assert up - down in (0, 1)

    def test_step_stops_short_of_far_target(self):
        target = get_sqrt_ratio_at_tick(-60)
        next_price, amount_in, amount_out, fee = compute_swap_step(
            sqrt_ratio_current_x96=Q96,
            sqrt_ratio_target_x96=target,
            liquidity=10**18,
            amount_remaining=10**6,
            fee_pips=3000,
        )
        assert target < next_price < Q96
        assert amount_in + fee == 10**6
        assert 0 < amount_out < amount_in

    def test_step_reaches_near_target(self):
        target = get_sqrt_ratio_at_tick(-1)
        next_price, amount_in, _, fee = compute_swap_step(
            sqrt_ratio_current_x96=Q96,
            sqrt_ratio_target_x96=target,
            liquidity=10**6,
            amount_remaining=10**12,
            fee_pips=3000,
        )
        assert next_price == target
        assert amount_in + fee < 10**12
