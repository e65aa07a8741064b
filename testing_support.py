"""
In-memory ledger and builders for exercising the sync engine without a node.

FakeLedger answers eth_getLogs-style queries from a list of creation logs
and Multicall3-style aggregates from registered pool state, and can be told
to fail with scripted remote errors.
"""

import asyncio
from collections import defaultdict, deque
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence, Tuple

from eth_abi import decode, encode
from eth_utils import to_checksum_address

from cfmm_sync.batchers.errors import RangeTooLarge
from cfmm_sync.config.protocols import ProtocolConfig
from cfmm_sync.core.storage.base import CheckpointNotFound, CheckpointStore, DataError
from cfmm_sync.dexes.codec import (
    DECIMALS_SELECTOR,
    GET_RESERVES_SELECTOR,
    LIQUIDITY_SELECTOR,
    SLOT0_SELECTOR,
    TICK_BITMAP_SELECTOR,
    TICKS_SELECTOR,
)
from cfmm_sync.fetchers.ledger import LedgerClient


def address(n: int) -> str:
    """Deterministic checksum address from an integer (ordering follows n)."""
    return to_checksum_address("0x" + format(n, "040x"))


def _topic_from_address(addr: str) -> bytes:
    return b"\x00" * 12 + bytes.fromhex(addr[2:])


def _topic_from_hex(value: str) -> bytes:
    return bytes.fromhex(value[2:])


def pair_created_log(
    factory: str, token0: str, token1: str, pair: str, block_number: int,
    log_index: int = 0, pair_index: int = 1,
) -> Dict[str, Any]:
    return {
        "address": factory,
        "topics": [
            _topic_from_hex(ProtocolConfig.UNISWAP_V2_PAIR_CREATED_EVENT),
            _topic_from_address(token0),
            _topic_from_address(token1),
        ],
        "data": encode(["address", "uint256"], [pair, pair_index]),
        "block_number": block_number,
        "log_index": log_index,
    }


def pool_created_log(
    factory: str, token0: str, token1: str, fee: int, tick_spacing: int, pool: str,
    block_number: int, log_index: int = 0,
) -> Dict[str, Any]:
    return {
        "address": factory,
        "topics": [
            _topic_from_hex(ProtocolConfig.UNISWAP_V3_POOL_CREATED_EVENT),
            _topic_from_address(token0),
            _topic_from_address(token1),
            fee.to_bytes(32, byteorder="big"),
        ],
        "data": encode(["int24", "address"], [tick_spacing, pool]),
        "block_number": block_number,
        "log_index": log_index,
    }


class FakeClock:
    """Manually advanced monotonic clock whose sleep advances time."""

    def __init__(self, now: float = 0.0):
        self.now = now
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += max(seconds, 0.0)
        await asyncio.sleep(0)


class FakeLedger(LedgerClient):
    """
    Scriptable LedgerClient.

    Attributes:
        logs: Creation logs served by call_logs
        max_log_range: call_logs raises RangeTooLarge above this many blocks
        log_failures / aggregate_failures: Exceptions raised, in order, by
            the next calls before normal service resumes
        log_requests / aggregate_requests: Every request received
    """

    def __init__(self, block_number: int = 0):
        self.block_number = block_number
        self.logs: List[Dict[str, Any]] = []
        self.max_log_range: Optional[int] = None
        self.log_failures: Deque[Exception] = deque()
        self.aggregate_failures: Deque[Exception] = deque()
        self.log_requests: List[Tuple[int, int]] = []
        self.aggregate_requests: List[List[Tuple[str, bytes]]] = []
        self.before_aggregate: Optional[Callable[[], Any]] = None

        self._static: Dict[Tuple[str, bytes], Tuple[bool, bytes]] = {}
        self._ticks: Dict[str, Tuple[int, Dict[int, Tuple[int, int]]]] = {}
        self._in_flight = 0
        self.max_in_flight = 0

    # Scripting helpers

    def add_log(self, log: Dict[str, Any]) -> None:
        self.logs.append(log)

    def set_result(self, target: str, calldata: bytes, success: bool, data: bytes) -> None:
        self._static[(target.lower(), bytes(calldata))] = (success, data)

    def set_reserves(self, pair: str, reserve0: int, reserve1: int, timestamp: int = 0) -> None:
        self.set_result(
            pair, GET_RESERVES_SELECTOR, True,
            encode(["uint112", "uint112", "uint32"], [reserve0, reserve1, timestamp]),
        )

    def set_decimals(self, token: str, decimals: int) -> None:
        self.set_result(token, DECIMALS_SELECTOR, True, encode(["uint8"], [decimals]))

    def set_slot0(self, pool: str, sqrt_price_x96: int, tick: int) -> None:
        self.set_result(
            pool, SLOT0_SELECTOR, True,
            encode(
                ["uint160", "int24", "uint16", "uint16", "uint16", "uint8", "bool"],
                [sqrt_price_x96, tick, 0, 1, 1, 0, True],
            ),
        )

    def set_liquidity(self, pool: str, liquidity: int) -> None:
        self.set_result(pool, LIQUIDITY_SELECTOR, True, encode(["uint128"], [liquidity]))

    def set_ticks(self, pool: str, tick_spacing: int, ticks: Dict[int, Tuple[int, int]]) -> None:
        """ticks: tick index -> (liquidity_gross, liquidity_net)."""
        self._ticks[pool.lower()] = (tick_spacing, dict(ticks))

    # LedgerClient

    async def call_logs(self, address, topics, from_block, to_block):
        self.log_requests.append((from_block, to_block))
        await asyncio.sleep(0)
        if self.log_failures:
            raise self.log_failures.popleft()
        if self.max_log_range is not None and to_block - from_block + 1 > self.max_log_range:
            raise RangeTooLarge(f"query returned more than 10000 results ({from_block}-{to_block})")

        topic0 = _topic_from_hex(topics[0]) if isinstance(topics[0], str) else bytes(topics[0])
        return [
            log for log in self.logs
            if log["address"].lower() == address.lower()
            and from_block <= log["block_number"] <= to_block
            and bytes(log["topics"][0]) == topic0
        ]

    async def call_aggregate(self, target, calls, block_identifier="latest"):
        self.aggregate_requests.append(list(calls))
        self._in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self._in_flight)
        try:
            if self.before_aggregate is not None:
                self.before_aggregate()
            await asyncio.sleep(0)
            if self.aggregate_failures:
                raise self.aggregate_failures.popleft()
            return [self._answer(call_target, calldata) for call_target, calldata in calls]
        finally:
            self._in_flight -= 1

    async def get_block_number(self) -> int:
        return self.block_number

    def _answer(self, target: str, calldata: bytes) -> Tuple[bool, bytes]:
        key = (target.lower(), bytes(calldata))
        if key in self._static:
            return self._static[key]

        selector = bytes(calldata[:4])
        if target.lower() in self._ticks:
            spacing, ticks = self._ticks[target.lower()]
            if selector == TICK_BITMAP_SELECTOR:
                word, = decode(["int16"], bytes(calldata[4:]))
                bitmap = 0
                for tick in ticks:
                    compressed = tick // spacing
                    if compressed >> 8 == word:
                        bitmap |= 1 << (compressed % 256)
                return True, encode(["uint256"], [bitmap])
            if selector == TICKS_SELECTOR:
                tick, = decode(["int24"], bytes(calldata[4:]))
                gross, net = ticks.get(tick, (0, 0))
                return True, encode(["uint128", "int128"], [gross, net])

        return False, b""


def requests_by_selector(requests: Sequence[Sequence[Tuple[str, bytes]]]) -> Dict[bytes, int]:
    counts: Dict[bytes, int] = defaultdict(int)
    for calls in requests:
        for _, calldata in calls:
            counts[bytes(calldata[:4])] += 1
    return dict(counts)


class MemoryCheckpointStore(CheckpointStore):
    """Dict-backed CheckpointStore; set fail_saves to make every save raise DataError."""

    def __init__(self, config=None):
        super().__init__(config)
        self.data: Dict[str, bytes] = {}
        self.fail_saves = False
        self.save_count = 0

    async def load_bytes(self, key: str) -> bytes:
        if key not in self.data:
            raise CheckpointNotFound(key)
        return self.data[key]

    async def save_bytes(self, key: str, data: bytes) -> None:
        if self.fail_saves:
            raise DataError("Simulated storage failure")
        self.data[key] = bytes(data)
        self.save_count += 1
