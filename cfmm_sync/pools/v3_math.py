"""
Concentrated liquidity math in Q64.96 fixed point.

Integer-only implementations of the Uniswap V3 TickMath, SqrtPriceMath and
SwapMath routines used to simulate swaps against a decoded pool state.

Key concepts:
- sqrtPriceX96: Square root of price in Q96 fixed-point format (96 bits of precision)
- Tick: logarithmic price representation where price = 1.0001^tick
- Fees are expressed in pips (hundredths of a basis point, 1e-6)
"""

# Q96 constants
Q96 = 2**96
Q192 = 2**192

MIN_TICK = -887272
MAX_TICK = 887272
MIN_SQRT_RATIO = 4295128739
MAX_SQRT_RATIO = 1461446703485210103287273052203988822378723970342

MAX_UINT256 = 2**256 - 1
FEE_DENOMINATOR = 1_000_000


def mul_div(a: int, b: int, denominator: int) -> int:
    """Floor of a * b / denominator."""
    return (a * b) // denominator


def mul_div_rounding_up(a: int, b: int, denominator: int) -> int:
    """Ceiling of a * b / denominator."""
    return -((-a * b) // denominator)


def div_rounding_up(a: int, b: int) -> int:
    return -((-a) // b)


def get_amount0_delta(
    *,
    sqrt_ratio_a_x96: int,
    sqrt_ratio_b_x96: int,
    liquidity: int,
    round_up: bool = True,
) -> int:
    """
    Calculate token0 amount from sqrt price range and liquidity.

    Formula: amount0 = L * (1/√Pa - 1/√Pb) = L * (√Pb - √Pa) / (√Pa * √Pb)

    Args:
        sqrt_ratio_a_x96: One sqrt price bound in Q96 format
        sqrt_ratio_b_x96: Other sqrt price bound in Q96 format
        liquidity: Pool liquidity L
        round_up: Round the result up (amounts owed to the pool) or down

    Returns:
        Amount of token0
    """
    if sqrt_ratio_a_x96 > sqrt_ratio_b_x96:
        sqrt_ratio_a_x96, sqrt_ratio_b_x96 = sqrt_ratio_b_x96, sqrt_ratio_a_x96

    numerator1 = liquidity << 96
    numerator2 = sqrt_ratio_b_x96 - sqrt_ratio_a_x96

    if round_up:
        return div_rounding_up(
            mul_div_rounding_up(numerator1, numerator2, sqrt_ratio_b_x96),
            sqrt_ratio_a_x96,
        )
    return mul_div(numerator1, numerator2, sqrt_ratio_b_x96) // sqrt_ratio_a_x96


def get_amount1_delta(
    *,
    sqrt_ratio_a_x96: int,
    sqrt_ratio_b_x96: int,
    liquidity: int,
    round_up: bool = True,
) -> int:
    """
    Calculate token1 amount from sqrt price range and liquidity.

    Formula: amount1 = L * (√Pb - √Pa) / Q96
    """
    if sqrt_ratio_a_x96 > sqrt_ratio_b_x96:
        sqrt_ratio_a_x96, sqrt_ratio_b_x96 = sqrt_ratio_b_x96, sqrt_ratio_a_x96

    if round_up:
        return mul_div_rounding_up(liquidity, sqrt_ratio_b_x96 - sqrt_ratio_a_x96, Q96)
    return mul_div(liquidity, sqrt_ratio_b_x96 - sqrt_ratio_a_x96, Q96)


def get_sqrt_ratio_at_tick(tick: int) -> int:
    """
    Calculate sqrtPriceX96 from tick.

    Exact port of TickMath.getSqrtRatioAtTick: sqrt(1.0001^tick) * 2^96,
    rounded up.

    Args:
        tick: The tick value

    Returns:
        sqrtPriceX96
    """
    abs_tick = abs(tick)
    if abs_tick > MAX_TICK:
        raise ValueError(f"Tick {tick} outside [{MIN_TICK}, {MAX_TICK}]")

    # Start with Q128 representation
    ratio = 0xFFFCB933BD6FAD37AA2D162D1A594001 if abs_tick & 0x1 else 1 << 128

    if abs_tick & 0x2:
        ratio = (ratio * 0xFFF97272373D413259A46990580E213A) >> 128
    if abs_tick & 0x4:
        ratio = (ratio * 0xFFF2E50F5F656932EF12357CF3C7FDCC) >> 128
    if abs_tick & 0x8:
        ratio = (ratio * 0xFFE5CACA7E10E4E61C3624EAA0941CD0) >> 128
    if abs_tick & 0x10:
        ratio = (ratio * 0xFFCB9843D60F6159C9DB58835C926644) >> 128
    if abs_tick & 0x20:
        ratio = (ratio * 0xFF973B41FA98C081472E6896DFB254C0) >> 128
    if abs_tick & 0x40:
        ratio = (ratio * 0xFF2EA16466C96A3843EC78B326B52861) >> 128
    if abs_tick & 0x80:
        ratio = (ratio * 0xFE5DEE046A99A2A811C461F1969C3053) >> 128
    if abs_tick & 0x100:
        ratio = (ratio * 0xFCBE86C7900A88AEDCFFC83B479AA3A4) >> 128
    if abs_tick & 0x200:
        ratio = (ratio * 0xF987A7253AC413176F2B074CF7815E54) >> 128
    if abs_tick & 0x400:
        ratio = (ratio * 0xF3392B0822B70005940C7A398E4B70F3) >> 128
    if abs_tick & 0x800:
        ratio = (ratio * 0xE7159475A2C29B7443B29C7FA6E889D9) >> 128
    if abs_tick & 0x1000:
        ratio = (ratio * 0xD097F3BDFD2022B8845AD8F792AA5825) >> 128
    if abs_tick & 0x2000:
        ratio = (ratio * 0xA9F746462D870FDF8A65DC1F90E061E5) >> 128
    if abs_tick & 0x4000:
        ratio = (ratio * 0x70D869A156D2A1B890BB3DF62BAF32F7) >> 128
    if abs_tick & 0x8000:
        ratio = (ratio * 0x31BE135F97D08FD981231505542FCFA6) >> 128
    if abs_tick & 0x10000:
        ratio = (ratio * 0x9AA508B5B7A84E1C677DE54F3E99BC9) >> 128
    if abs_tick & 0x20000:
        ratio = (ratio * 0x5D6AF8DEDB81196699C329225EE604) >> 128
    if abs_tick & 0x40000:
        ratio = (ratio * 0x2216E584F5FA1EA926041BEDFE98) >> 128
    if abs_tick & 0x80000:
        ratio = (ratio * 0x48A170391F7DC42444E8FA2) >> 128

    # Invert if tick is positive
    if tick > 0:
        ratio = MAX_UINT256 // ratio

    # Q128 -> Q96, rounding up so that get_tick_at_sqrt_ratio stays consistent
    return (ratio >> 32) + (0 if ratio % (1 << 32) == 0 else 1)


def get_tick_at_sqrt_ratio(sqrt_price_x96: int) -> int:
    """
    Greatest tick whose sqrt ratio is less than or equal to sqrt_price_x96.

    Binary search over get_sqrt_ratio_at_tick, which is monotonic.
    """
    if not MIN_SQRT_RATIO <= sqrt_price_x96 < MAX_SQRT_RATIO:
        raise ValueError(f"sqrtPriceX96 {sqrt_price_x96} out of range")

    low, high = MIN_TICK, MAX_TICK
    while low < high:
        mid = (low + high + 1) // 2
        if get_sqrt_ratio_at_tick(mid) <= sqrt_price_x96:
            low = mid
        else:
            high = mid - 1
    return low


def get_next_sqrt_price_from_input(
    *,
    sqrt_price_x96: int,
    liquidity: int,
    amount_in: int,
    zero_for_one: bool,
) -> int:
    """Price after adding amount_in of the input token within one liquidity range."""
    if sqrt_price_x96 <= 0 or liquidity <= 0:
        raise ValueError("sqrt price and liquidity must be positive")

    if amount_in == 0:
        return sqrt_price_x96

    if zero_for_one:
        # token0 in: rounds up so the price never moves too far
        numerator1 = liquidity << 96
        denominator = numerator1 + amount_in * sqrt_price_x96
        return mul_div_rounding_up(numerator1, sqrt_price_x96, denominator)

    # token1 in: rounds down
    return sqrt_price_x96 + (amount_in << 96) // liquidity


def compute_swap_step(
    *,
    sqrt_ratio_current_x96: int,
    sqrt_ratio_target_x96: int,
    liquidity: int,
    amount_remaining: int,
    fee_pips: int,
):
    """
    Compute a single exact-input swap step within one liquidity range.

    Returns:
        (sqrt_ratio_next_x96, amount_in, amount_out, fee_amount)
    """
    zero_for_one = sqrt_ratio_current_x96 >= sqrt_ratio_target_x96

    amount_remaining_less_fee = mul_div(
        amount_remaining, FEE_DENOMINATOR - fee_pips, FEE_DENOMINATOR
    )
    if zero_for_one:
        amount_in = get_amount0_delta(
            sqrt_ratio_a_x96=sqrt_ratio_target_x96,
            sqrt_ratio_b_x96=sqrt_ratio_current_x96,
            liquidity=liquidity,
            round_up=True,
        )
    else:
        amount_in = get_amount1_delta(
            sqrt_ratio_a_x96=sqrt_ratio_current_x96,
            sqrt_ratio_b_x96=sqrt_ratio_target_x96,
            liquidity=liquidity,
            round_up=True,
        )

    if amount_remaining_less_fee >= amount_in:
        sqrt_ratio_next_x96 = sqrt_ratio_target_x96
    else:
        sqrt_ratio_next_x96 = get_next_sqrt_price_from_input(
            sqrt_price_x96=sqrt_ratio_current_x96,
            liquidity=liquidity,
            amount_in=amount_remaining_less_fee,
            zero_for_one=zero_for_one,
        )

    reached_target = sqrt_ratio_next_x96 == sqrt_ratio_target_x96

    if zero_for_one:
        if not reached_target:
            amount_in = get_amount0_delta(
                sqrt_ratio_a_x96=sqrt_ratio_next_x96,
                sqrt_ratio_b_x96=sqrt_ratio_current_x96,
                liquidity=liquidity,
                round_up=True,
            )
        amount_out = get_amount1_delta(
            sqrt_ratio_a_x96=sqrt_ratio_next_x96,
            sqrt_ratio_b_x96=sqrt_ratio_current_x96,
            liquidity=liquidity,
            round_up=False,
        )
    else:
        if not reached_target:
            amount_in = get_amount1_delta(
                sqrt_ratio_a_x96=sqrt_ratio_current_x96,
                sqrt_ratio_b_x96=sqrt_ratio_next_x96,
                liquidity=liquidity,
                round_up=True,
            )
        amount_out = get_amount0_delta(
            sqrt_ratio_a_x96=sqrt_ratio_current_x96,
            sqrt_ratio_b_x96=sqrt_ratio_next_x96,
            liquidity=liquidity,
            round_up=False,
        )

    if not reached_target:
        # Remainder of the input is taken as fee
        fee_amount = amount_remaining - amount_in
    else:
        fee_amount = mul_div_rounding_up(amount_in, fee_pips, FEE_DENOMINATOR - fee_pips)

    return sqrt_ratio_next_x96, amount_in, amount_out, fee_amount
