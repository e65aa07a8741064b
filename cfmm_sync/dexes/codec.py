"""
Raw result interpretation for each Dex variant.

Turns creation-event logs into pool identities and aggregated call results
into Pool instances. Every per-pool failure becomes a DecodeError warning so
one malformed entry never discards the rest of a batch.
"""

import logging
from dataclasses import replace
from typing import Dict, List, Sequence, Tuple

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import function_signature_to_4byte_selector, to_checksum_address

from ..config.protocols import ProtocolConfig
from ..pools.errors import InvalidPool
from ..pools.types import (
    ConcentratedLiquidityPool,
    ConstantProductPool,
    DexVariant,
    Pool,
    address_key,
)
from .dex import Dex, PoolIdentity
from .errors import DecodeError

logger = logging.getLogger(__name__)

# (target address, calldata)
Call = Tuple[str, bytes]
# (success, return data) as returned by Multicall3.tryAggregate
CallResult = Tuple[bool, bytes]

GET_RESERVES_SELECTOR = function_signature_to_4byte_selector("getReserves()")
SLOT0_SELECTOR = function_signature_to_4byte_selector("slot0()")
LIQUIDITY_SELECTOR = function_signature_to_4byte_selector("liquidity()")
DECIMALS_SELECTOR = function_signature_to_4byte_selector("decimals()")
TICK_BITMAP_SELECTOR = function_signature_to_4byte_selector("tickBitmap(int16)")
TICKS_SELECTOR = function_signature_to_4byte_selector("ticks(int24)")

MIN_WORD = -(2**15)
MAX_WORD = 2**15 - 1

DECODE_FAILURES = (DecodingError, DecodeError, InvalidPool, ValueError, TypeError, KeyError, IndexError)


def _as_bytes(value) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return bytes.fromhex(value[2:] if value.startswith("0x") else value)
    raise TypeError(f"Expected bytes or hex string, got {type(value).__name__}")


def _topic_address(topic) -> str:
    raw = _as_bytes(topic)
    if len(raw) != 32:
        raise ValueError(f"Topic must be 32 bytes, got {len(raw)}")
    return to_checksum_address(raw[-20:])


def discovery_topic(dex: Dex) -> str:
    """Creation event topic scanned for this dex."""
    if "discovery_topic" in dex.protocol_params:
        return dex.protocol_params["discovery_topic"]

    if dex.variant is DexVariant.CONSTANT_PRODUCT:
        return ProtocolConfig.UNISWAP_V2_PAIR_CREATED_EVENT
    if dex.variant is DexVariant.CONCENTRATED_LIQUIDITY:
        return ProtocolConfig.UNISWAP_V3_POOL_CREATED_EVENT
    raise ValueError(f"Unsupported dex variant: {dex.variant!r}")


def _decode_creation_log(dex: Dex, log: Dict) -> PoolIdentity:
    topics = log["topics"]
    data = _as_bytes(log["data"])
    if len(topics) < 3:
        raise ValueError(f"Expected at least 3 topics, got {len(topics)}")
    if _as_bytes(topics[0]) != _as_bytes(discovery_topic(dex)):
        raise ValueError("Unexpected event topic")

    token0 = _topic_address(topics[1])
    token1 = _topic_address(topics[2])

    if dex.variant is DexVariant.CONSTANT_PRODUCT:
        # PairCreated(address indexed token0, address indexed token1, address pair, uint)
        pool_address, _ = decode(["address", "uint256"], data)
        fee = None
        tick_spacing = None
    elif dex.variant is DexVariant.CONCENTRATED_LIQUIDITY:
        # PoolCreated(address indexed token0, address indexed token1,
        #             uint24 indexed fee, int24 tickSpacing, address pool)
        if len(topics) < 4:
            raise ValueError("PoolCreated log is missing the fee topic")
        fee = int.from_bytes(_as_bytes(topics[3]), byteorder="big")
        tick_spacing, pool_address = decode(["int24", "address"], data)
        if tick_spacing <= 0:
            tick_spacing = dex.tick_spacing_for(fee)
        if tick_spacing is None:
            raise ValueError(f"Unknown tick spacing for fee tier {fee}")
    else:
        raise ValueError(f"Unsupported dex variant: {dex.variant!r}")

    pool_address = to_checksum_address(pool_address)
    if address_key(token0) >= address_key(token1):
        raise DecodeError(pool_address, f"Tokens not in canonical order: {token0}, {token1}")

    return PoolIdentity(
        address=pool_address,
        token0=token0,
        token1=token1,
        dex_id=dex.dex_id,
        created_block=int(log["block_number"]),
        log_index=int(log.get("log_index", 0)),
        fee=fee,
        tick_spacing=tick_spacing,
    )


def discovery_decode(
    dex: Dex, raw_log_batch: Sequence[Dict]
) -> Tuple[List[PoolIdentity], List[DecodeError]]:
    """
    Interpret creation-event logs into pool identities.

    Args:
        dex: Dex the logs were emitted by
        raw_log_batch: Logs with topics, data, block_number and log_index

    Returns:
        (identities in log order, per-log decode warnings)
    """
    identities = []
    warnings = []

    for log in raw_log_batch:
        try:
            identities.append(_decode_creation_log(dex, log))
        except DecodeError as e:
            warnings.append(e)
        except DECODE_FAILURES as e:
            warnings.append(DecodeError(None, f"Malformed creation log at block "
                                              f"{log.get('block_number')}: {e}"))

    if warnings:
        logger.warning(f"{len(warnings)} creation logs could not be decoded for {dex.dex_id}")
    return identities, warnings


def state_calls(dex: Dex, identity: PoolIdentity) -> List[Call]:
    """Calls needed to read one pool's state in an aggregated request."""
    if dex.variant is DexVariant.CONSTANT_PRODUCT:
        calls = [(identity.address, GET_RESERVES_SELECTOR)]
    elif dex.variant is DexVariant.CONCENTRATED_LIQUIDITY:
        calls = [(identity.address, SLOT0_SELECTOR), (identity.address, LIQUIDITY_SELECTOR)]
    else:
        raise ValueError(f"Unsupported dex variant: {dex.variant!r}")

    if not identity.has_decimals:
        calls.append((identity.token0, DECIMALS_SELECTOR))
        calls.append((identity.token1, DECIMALS_SELECTOR))
    return calls


def _successful(identity: PoolIdentity, result: CallResult, what: str) -> bytes:
    success, data = result
    if not success:
        raise DecodeError(identity.address, f"{what} call reverted")
    return _as_bytes(data)


def _decode_decimals(identity: PoolIdentity, results: Sequence[CallResult]) -> Tuple[int, int]:
    if identity.has_decimals:
        return identity.decimals0, identity.decimals1
    decimals = []
    for result in results:
        data = _successful(identity, result, "decimals()")
        value, = decode(["uint256"], data[:32])
        if value > 255:
            raise DecodeError(identity.address, f"Token decimals out of range: {value}")
        decimals.append(value)
    return decimals[0], decimals[1]


def _decode_pool(
    dex: Dex, identity: PoolIdentity, results: Sequence[CallResult], block_number
) -> Pool:
    if dex.variant is DexVariant.CONSTANT_PRODUCT:
        reserves_data = _successful(identity, results[0], "getReserves()")
        reserve0, reserve1, _ = decode(["uint112", "uint112", "uint32"], reserves_data)
        decimals0, decimals1 = _decode_decimals(identity, results[1:])
        return ConstantProductPool(
            address=identity.address,
            token0=identity.token0,
            token1=identity.token1,
            dex_id=dex.dex_id,
            reserve0=reserve0,
            reserve1=reserve1,
            fee_bps=dex.fee_bps,
            decimals0=decimals0,
            decimals1=decimals1,
            block_number=block_number,
        )

    # slot0 layouts differ between forks after the first two words
    slot0_data = _successful(identity, results[0], "slot0()")
    sqrt_price_x96, tick = decode(["uint160", "int24"], slot0_data[:64])
    liquidity, = decode(["uint128"], _successful(identity, results[1], "liquidity()"))
    decimals0, decimals1 = _decode_decimals(identity, results[2:])
    return ConcentratedLiquidityPool(
        address=identity.address,
        token0=identity.token0,
        token1=identity.token1,
        dex_id=dex.dex_id,
        sqrt_price_x96=sqrt_price_x96,
        tick=tick,
        liquidity=liquidity,
        fee_pips=identity.fee,
        tick_spacing=identity.tick_spacing,
        decimals0=decimals0,
        decimals1=decimals1,
        block_number=block_number,
    )


def state_decode(
    dex: Dex,
    raw_batch_result: Sequence[CallResult],
    pool_identities: Sequence[PoolIdentity],
    block_number=None,
) -> Tuple[List[Pool], List[DecodeError]]:
    """
    Interpret an aggregated state response into pools.

    Results must be laid out as the concatenation of state_calls() for each
    identity, in order. Output preserves input order minus failed pools.

    Returns:
        (decoded pools, per-pool decode warnings)
    """
    pools = []
    warnings = []
    cursor = 0

    for identity in pool_identities:
        call_count = len(state_calls(dex, identity))
        results = raw_batch_result[cursor:cursor + call_count]
        cursor += call_count

        try:
            if len(results) != call_count:
                raise DecodeError(identity.address, "Missing results in batch response")
            pools.append(_decode_pool(dex, identity, results, block_number))
        except DecodeError as e:
            warnings.append(e)
        except DECODE_FAILURES as e:
            warnings.append(DecodeError(identity.address, str(e)))

    if cursor != len(raw_batch_result):
        logger.warning(
            f"Batch response for {dex.dex_id} had {len(raw_batch_result)} results, "
            f"expected {cursor}"
        )
    for warning in warnings:
        logger.warning(f"Decode failed for {warning}")
    return pools, warnings


def tick_bitmap_words(pool: ConcentratedLiquidityPool, radius: int) -> List[int]:
    """Bitmap word positions within radius words of the current tick."""
    compressed = pool.tick // pool.tick_spacing
    word = compressed >> 8
    return [w for w in range(word - radius, word + radius + 1) if MIN_WORD <= w <= MAX_WORD]


def tick_bitmap_calls(pool: ConcentratedLiquidityPool, words: Sequence[int]) -> List[Call]:
    return [(pool.address, TICK_BITMAP_SELECTOR + encode(["int16"], [w])) for w in words]


def decode_tick_bitmap(
    pool: ConcentratedLiquidityPool, words: Sequence[int], results: Sequence[CallResult]
) -> List[int]:
    """Initialized tick indexes from bitmap words, ascending."""
    if len(results) != len(words):
        raise DecodeError(pool.address, "Missing tick bitmap results")

    ticks = []
    for word, result in zip(words, results):
        bitmap, = decode(["uint256"], _successful(pool, result, "tickBitmap()"))
        for bit in range(256):
            if bitmap >> bit & 1:
                ticks.append(((word << 8) + bit) * pool.tick_spacing)
    return ticks


def tick_calls(pool: ConcentratedLiquidityPool, ticks: Sequence[int]) -> List[Call]:
    return [(pool.address, TICKS_SELECTOR + encode(["int24"], [t])) for t in ticks]


def decode_ticks(
    pool: ConcentratedLiquidityPool, ticks: Sequence[int], results: Sequence[CallResult]
) -> Dict[int, int]:
    """tick -> liquidity_net from ticks() results."""
    if len(results) != len(ticks):
        raise DecodeError(pool.address, "Missing tick results")

    initialized = {}
    for tick, result in zip(ticks, results):
        data = _successful(pool, result, "ticks()")
        liquidity_gross, liquidity_net = decode(["uint128", "int128"], data[:64])
        if liquidity_gross > 0:
            initialized[tick] = liquidity_net
    return initialized


def with_ticks(pool: ConcentratedLiquidityPool, initialized_ticks: Dict[int, int]) -> ConcentratedLiquidityPool:
    return replace(pool, initialized_ticks=dict(initialized_ticks))
