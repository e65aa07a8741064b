"""
Tests for the pool discovery batcher.
"""

import asyncio

import pytest

from cfmm_sync.batchers import (
    BatchConfig,
    Cancelled,
    DiscoveryFailed,
    FatalRemoteError,
    PoolDiscoveryBatcher,
    RequestThrottle,
    ThrottleConfig,
    TransientRemoteError,
    split_range,
)
from testing_support import FakeLedger, address, pair_created_log


def add_pairs(ledger, dex, blocks):
    """One PairCreated log per block; pair n uses tokens (2n, 2n + 1)."""
    pairs = []
    for n, block in enumerate(blocks):
        pair = address(0xA000 + n)
        ledger.add_log(pair_created_log(
            dex.factory_address, address(0x100 + 2 * n), address(0x101 + 2 * n), pair, block, log_index=n,
        ))
        pairs.append(pair)
    return pairs


class TestSplitRange:
    """Inclusive sub-range splitting."""

    def test_split(self):
        assert split_range(100, 124, 10) == [(100, 109), (110, 119), (120, 124)]

    def test_single_block(self):
        assert split_range(7, 7, 10) == [(7, 7)]

    def test_invalid_step(self):
        with pytest.raises(ValueError):
            split_range(0, 10, 0)


class TestDiscover:
    """Scanning creation events."""

    @pytest.mark.asyncio
    async def test_chunking_does_not_change_result(self, ledger, throttle, v2_dex):
        pairs = add_pairs(ledger, v2_dex, [100, 105, 117, 150, 199, 200])

        results = []
        for max_range in (1, 7, 10_000):
            batcher = PoolDiscoveryBatcher(ledger, throttle, BatchConfig(max_block_range=max_range))
            result = await batcher.discover(v2_dex, 100, 200)
            results.append([identity.address for identity in result.identities])

        assert results[0] == results[1] == results[2] == pairs

    @pytest.mark.asyncio
    async def test_results_ordered_and_deduplicated(self, ledger, throttle, batch_config, v2_dex):
        pairs = add_pairs(ledger, v2_dex, [150, 120])
        ledger.add_log(dict(ledger.logs[0]))

        batcher = PoolDiscoveryBatcher(ledger, throttle, batch_config)
        result = await batcher.discover(v2_dex, 100, 200)

        assert [identity.address for identity in result.identities] == [pairs[1], pairs[0]]

    @pytest.mark.asyncio
    async def test_only_requested_range_is_returned(self, ledger, throttle, batch_config, v2_dex):
        pairs = add_pairs(ledger, v2_dex, [90, 150, 250])
        batcher = PoolDiscoveryBatcher(ledger, throttle, batch_config)

        result = await batcher.discover(v2_dex, 100, 200)
        assert [identity.address for identity in result.identities] == [pairs[1]]
        assert (result.from_block, result.to_block) == (100, 200)

    @pytest.mark.asyncio
    async def test_empty_range(self, ledger, throttle, batch_config, v2_dex):
        batcher = PoolDiscoveryBatcher(ledger, throttle, batch_config)
        result = await batcher.discover(v2_dex, 201, 200)
        assert result.identities == []
        assert ledger.log_requests == []

    @pytest.mark.asyncio
    async def test_negative_range_rejected(self, ledger, throttle, batch_config, v2_dex):
        batcher = PoolDiscoveryBatcher(ledger, throttle, batch_config)
        with pytest.raises(ValueError):
            await batcher.discover(v2_dex, -1, 200)

    @pytest.mark.asyncio
    async def test_decode_failures_are_warnings(self, ledger, throttle, batch_config, v2_dex):
        add_pairs(ledger, v2_dex, [150])
        ledger.add_log(dict(ledger.logs[0], data=b"\x00", block_number=160))

        result = await PoolDiscoveryBatcher(ledger, throttle, batch_config).discover(v2_dex, 100, 200)
        assert len(result.identities) == 1
        assert len(result.warnings) == 1


class TestRangeShrinking:
    """Provider range limits."""

    @pytest.mark.asyncio
    async def test_range_too_large_splits_and_remembers(self, ledger, throttle, v2_dex):
        pairs = add_pairs(ledger, v2_dex, [100, 130, 160, 199])
        ledger.max_log_range = 25
        batcher = PoolDiscoveryBatcher(ledger, throttle, BatchConfig(max_block_range=100, retry_base_delay=0))

        result = await batcher.discover(v2_dex, 100, 199)

        assert [identity.address for identity in result.identities] == pairs
        assert batcher.block_range_for(v2_dex) == 25
        assert all(end - start + 1 <= 100 for start, end in ledger.log_requests)

    @pytest.mark.asyncio
    async def test_learned_range_used_by_next_scan(self, ledger, throttle, v2_dex):
        ledger.max_log_range = 25
        batcher = PoolDiscoveryBatcher(ledger, throttle, BatchConfig(max_block_range=100, retry_base_delay=0))
        await batcher.discover(v2_dex, 100, 199)

        ledger.log_requests.clear()
        await batcher.discover(v2_dex, 200, 299)
        assert all(end - start + 1 <= 25 for start, end in ledger.log_requests)

    @pytest.mark.asyncio
    async def test_range_grows_after_clean_scans(self, ledger, throttle, v2_dex):
        batcher = PoolDiscoveryBatcher(ledger, throttle, BatchConfig(max_block_range=100))
        batcher._block_ranges[v2_dex.dex_id] = 20

        await batcher.discover(v2_dex, 100, 199)
        assert batcher.block_range_for(v2_dex) == 25

    @pytest.mark.asyncio
    async def test_split_limit_raises_discovery_failed(self, ledger, throttle, v2_dex):
        ledger.max_log_range = 1
        batcher = PoolDiscoveryBatcher(
            ledger, throttle, BatchConfig(max_block_range=100, max_range_splits=2, retry_base_delay=0)
        )

        with pytest.raises(DiscoveryFailed) as exc_info:
            await batcher.discover(v2_dex, 100, 199)
        assert 100 <= exc_info.value.from_block <= exc_info.value.to_block <= 199


class TestDiscoveryFailures:
    """Retries and failure reporting."""

    @pytest.mark.asyncio
    async def test_transient_error_retried(self, ledger, throttle, batch_config, v2_dex):
        pairs = add_pairs(ledger, v2_dex, [150])
        ledger.log_failures.append(TransientRemoteError("read timed out"))

        result = await PoolDiscoveryBatcher(ledger, throttle, batch_config).discover(v2_dex, 100, 200)

        assert [identity.address for identity in result.identities] == pairs
        assert len(ledger.log_requests) == 2

    @pytest.mark.asyncio
    async def test_fatal_error_fails_discovery(self, ledger, throttle, batch_config, v2_dex):
        ledger.log_failures.append(FatalRemoteError("method not found"))

        with pytest.raises(DiscoveryFailed) as exc_info:
            await PoolDiscoveryBatcher(ledger, throttle, batch_config).discover(v2_dex, 100, 200)
        assert isinstance(exc_info.value.last_error, FatalRemoteError)
        assert len(ledger.log_requests) == 1

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, ledger, throttle, batch_config, v2_dex):
        ledger.log_failures.extend(TransientRemoteError("timeout") for _ in range(batch_config.max_retries))

        with pytest.raises(DiscoveryFailed):
            await PoolDiscoveryBatcher(ledger, throttle, batch_config).discover(v2_dex, 100, 200)
        assert len(ledger.log_requests) == batch_config.max_retries

    @pytest.mark.asyncio
    async def test_cancelled_before_dispatch(self, ledger, throttle, batch_config, v2_dex):
        cancel_event = asyncio.Event()
        cancel_event.set()

        with pytest.raises(Cancelled):
            await PoolDiscoveryBatcher(ledger, throttle, batch_config).discover(
                v2_dex, 100, 200, cancel_event
            )
        assert ledger.log_requests == []

    @pytest.mark.asyncio
    async def test_cancel_while_queued_on_throttle(self, v2_dex):
        cancel_event = asyncio.Event()

        class CancellingLedger(FakeLedger):
            async def call_logs(self, address, topics, from_block, to_block):
                for _ in range(5):
                    await asyncio.sleep(0)
                cancel_event.set()
                return await super().call_logs(address, topics, from_block, to_block)

        ledger = CancellingLedger(block_number=200)
        throttle = RequestThrottle(ThrottleConfig(max_rate=0, max_concurrent=1))
        batcher = PoolDiscoveryBatcher(ledger, throttle, BatchConfig(max_block_range=10))

        with pytest.raises(Cancelled):
            await batcher.discover(v2_dex, 100, 159, cancel_event)
        assert len(ledger.log_requests) == 1
