"""
Pool state batch fetcher.

Packs per-pool state calls into Multicall3 aggregate requests sized under
the configured call limit and decodes them through the dex codecs.
Concentrated liquidity pools take two extra aggregate rounds: tick bitmap
words around the current tick, then ticks() for each initialized tick.
"""

import asyncio
from typing import Dict, List, Optional, Sequence, Tuple, Union

from ..dexes.codec import (
    DECODE_FAILURES,
    decode_tick_bitmap,
    decode_ticks,
    state_calls,
    state_decode,
    tick_bitmap_calls,
    tick_bitmap_words,
    tick_calls,
    with_ticks,
)
from ..dexes.dex import Dex, PoolIdentity
from ..dexes.errors import DecodeError
from ..pools.types import DexVariant, Pool
from .base import BaseBatcher, FetchStateResult, raise_phase_failure
from .errors import Cancelled, FetchFailed, RemoteError

BlockIdentifier = Union[int, str]


class PoolStateBatcher(BaseBatcher):
    """
    Batch fetcher for pool state.

    Per-pool decode failures become warnings; only a batch that exhausts its
    retries fails the fetch, with FetchFailed naming the batch's pools.
    """

    async def fetch_state(
        self,
        dex: Dex,
        identities: Sequence[PoolIdentity],
        block_identifier: BlockIdentifier = "latest",
        cancel_event: Optional[asyncio.Event] = None,
    ) -> FetchStateResult:
        """
        Fetch and decode state for pools of one dex.

        Args:
            dex: Dex the pools belong to
            identities: Pools to fetch
            block_identifier: Block to read state at
            cancel_event: Stops new dispatches once set

        Returns:
            FetchStateResult with pools in input order (minus failures) and warnings

        Raises:
            FetchFailed: A batch exhausted its retries
            Cancelled: cancel_event was set
        """
        if not identities:
            return FetchStateResult(pools=[], block_identifier=block_identifier)

        batches = self._chunk_calls([(identity, state_calls(dex, identity)) for identity in identities])
        self.logger.info(
            f"Fetching state for {len(identities)} {dex.dex_id} pools in {len(batches)} batches"
        )

        outcomes = await asyncio.gather(
            *[self._fetch_batch(dex, batch, block_identifier, cancel_event) for batch in batches],
            return_exceptions=True,
        )
        raise_phase_failure(outcomes, cancel_event)

        pools = []
        warnings = []
        for batch_pools, batch_warnings in outcomes:
            pools.extend(batch_pools)
            warnings.extend(batch_warnings)

        if dex.variant is DexVariant.CONCENTRATED_LIQUIDITY and pools:
            pools, tick_warnings = await self._fetch_tick_maps(
                pools, block_identifier, cancel_event
            )
            warnings.extend(tick_warnings)

        self.logger.info(
            f"Fetched {len(pools)}/{len(identities)} {dex.dex_id} pools "
            f"({len(warnings)} warnings)"
        )
        return FetchStateResult(pools=pools, warnings=warnings, block_identifier=block_identifier)

    async def _aggregate(
        self,
        batch_pools: List[str],
        calls: list,
        block_identifier: BlockIdentifier,
        cancel_event: Optional[asyncio.Event],
    ) -> list:
        try:
            return await self._retry_operation(
                self.ledger.call_aggregate,
                self.config.multicall_address,
                calls,
                block_identifier,
                cancel_event=cancel_event,
            )
        except Cancelled:
            raise
        except RemoteError as e:
            raise FetchFailed(batch_pools, e) from e

    async def _fetch_batch(
        self,
        dex: Dex,
        batch: List[Tuple[PoolIdentity, list]],
        block_identifier: BlockIdentifier,
        cancel_event: Optional[asyncio.Event],
    ) -> Tuple[List[Pool], List[DecodeError]]:
        identities = [identity for identity, _ in batch]
        calls = [call for _, identity_calls in batch for call in identity_calls]
        results = await self._aggregate(
            [identity.address for identity in identities], calls, block_identifier, cancel_event
        )
        block_number = block_identifier if isinstance(block_identifier, int) else None
        return state_decode(dex, results, identities, block_number)

    async def _aggregate_per_pool(
        self,
        items: List[Tuple[str, list]],
        block_identifier: BlockIdentifier,
        cancel_event: Optional[asyncio.Event],
    ) -> Dict[str, list]:
        """Run (pool address, calls) items in grouped aggregates; results keyed by address."""

        async def run(chunk):
            calls = [call for _, pool_calls in chunk for call in pool_calls]
            results = await self._aggregate(
                [address for address, _ in chunk], calls, block_identifier, cancel_event
            )
            per_pool = {}
            cursor = 0
            for address, pool_calls in chunk:
                per_pool[address] = results[cursor:cursor + len(pool_calls)]
                cursor += len(pool_calls)
            return per_pool

        outcomes = await asyncio.gather(
            *[run(chunk) for chunk in self._chunk_calls(items)], return_exceptions=True
        )
        raise_phase_failure(outcomes, cancel_event)

        merged = {}
        for outcome in outcomes:
            merged.update(outcome)
        return merged

    async def _fetch_tick_maps(
        self,
        pools: List[Pool],
        block_identifier: BlockIdentifier,
        cancel_event: Optional[asyncio.Event],
    ) -> Tuple[List[Pool], List[DecodeError]]:
        radius = self.config.tick_bitmap_word_radius
        words = {pool.address: tick_bitmap_words(pool, radius) for pool in pools}
        warnings = []

        bitmap_results = await self._aggregate_per_pool(
            [(pool.address, tick_bitmap_calls(pool, words[pool.address])) for pool in pools],
            block_identifier,
            cancel_event,
        )

        initialized = {}
        for pool in pools:
            try:
                initialized[pool.address] = decode_tick_bitmap(
                    pool, words[pool.address], bitmap_results[pool.address]
                )
            except DecodeError as e:
                warnings.append(e)
            except DECODE_FAILURES as e:
                warnings.append(DecodeError(pool.address, f"Bad tick bitmap: {e}"))

        tick_items = [
            (pool.address, tick_calls(pool, initialized[pool.address]))
            for pool in pools
            if initialized.get(pool.address)
        ]
        tick_results = {}
        if tick_items:
            tick_results = await self._aggregate_per_pool(tick_items, block_identifier, cancel_event)

        completed = []
        for pool in pools:
            if pool.address not in initialized:
                continue
            ticks = initialized[pool.address]
            try:
                liquidity_net = decode_ticks(pool, ticks, tick_results.get(pool.address, [])) if ticks else {}
                completed.append(with_ticks(pool, liquidity_net))
            except DecodeError as e:
                warnings.append(e)
            except DECODE_FAILURES as e:
                warnings.append(DecodeError(pool.address, f"Bad tick data: {e}"))

        return completed, warnings
