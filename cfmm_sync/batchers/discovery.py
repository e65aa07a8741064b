"""
Pool discovery batch scanner.

Scans a dex factory's creation events over a block range in concurrent
sub-range requests, shrinking sub-ranges when the provider refuses them and
remembering the working size for later scans.
"""

import asyncio
import math
from typing import Any, Dict, List, Optional

from ..dexes.codec import discovery_decode, discovery_topic
from ..dexes.dex import Dex
from .base import BaseBatcher, DiscoveryResult, raise_phase_failure, split_range
from .errors import Cancelled, DiscoveryFailed, RangeTooLarge, RemoteError


class PoolDiscoveryBatcher(BaseBatcher):
    """
    Batch scanner for pool creation events.

    Results are ordered by (block, log_index) and de-duplicated by pool
    address regardless of the order sub-range requests complete in.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._block_ranges: Dict[str, int] = {}

    def block_range_for(self, dex: Dex) -> int:
        """Current sub-range size for a dex (shrinks on RangeTooLarge)."""
        return self._block_ranges.get(dex.dex_id, self.config.max_block_range)

    def _shrink(self, dex: Dex, span: int) -> int:
        size = max(self.config.min_block_range, math.ceil(span / self.config.range_shrink_factor))
        if size < self.block_range_for(dex):
            self._block_ranges[dex.dex_id] = size
            self.logger.info(f"Block range for {dex.dex_id} shrunk to {size}")
        return size

    def _grow(self, dex: Dex) -> None:
        current = self.block_range_for(dex)
        if current >= self.config.max_block_range:
            return
        grown = min(
            self.config.max_block_range,
            max(current + 1, int(current * self.config.range_grow_factor)),
        )
        self._block_ranges[dex.dex_id] = grown
        self.logger.debug(f"Block range for {dex.dex_id} grown to {grown}")

    async def discover(
        self,
        dex: Dex,
        from_block: int,
        to_block: int,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> DiscoveryResult:
        """
        Discover pools created by dex within [from_block, to_block].

        Args:
            dex: Dex whose factory is scanned
            from_block: First block (inclusive)
            to_block: Last block (inclusive)
            cancel_event: Stops new dispatches once set

        Returns:
            DiscoveryResult with identities in creation order plus decode warnings

        Raises:
            DiscoveryFailed: A sub-range could not be scanned
            Cancelled: cancel_event was set
        """
        if from_block < 0 or to_block < 0:
            raise ValueError(f"Invalid block range: {from_block}-{to_block}")
        if from_block > to_block:
            return DiscoveryResult(identities=[], from_block=from_block, to_block=to_block)

        step = self.block_range_for(dex)
        topic = discovery_topic(dex)
        ranges = split_range(from_block, to_block, step)

        self.logger.info(
            f"Scanning {dex.dex_id} blocks {from_block}-{to_block} in {len(ranges)} requests"
        )

        outcomes = await asyncio.gather(
            *[self._scan_range(dex, topic, start, end, 0, cancel_event) for start, end in ranges],
            return_exceptions=True,
        )
        raise_phase_failure(outcomes, cancel_event)

        logs = [log for chunk in outcomes for log in chunk]
        identities, warnings = discovery_decode(dex, logs)

        identities.sort(key=lambda identity: (identity.created_block, identity.log_index))
        unique = []
        seen = set()
        for identity in identities:
            key = identity.address.lower()
            if key in seen:
                continue
            seen.add(key)
            unique.append(identity)

        if self.block_range_for(dex) >= step:
            self._grow(dex)

        self.logger.info(
            f"Discovered {len(unique)} pools for {dex.dex_id} in blocks {from_block}-{to_block}"
        )
        return DiscoveryResult(
            identities=unique, warnings=warnings, from_block=from_block, to_block=to_block
        )

    async def _scan_range(
        self,
        dex: Dex,
        topic: str,
        start: int,
        end: int,
        depth: int,
        cancel_event: Optional[asyncio.Event],
    ) -> List[Dict[str, Any]]:
        try:
            return await self._retry_operation(
                self.ledger.call_logs,
                dex.factory_address,
                [topic],
                start,
                end,
                cancel_event=cancel_event,
            )
        except RangeTooLarge as e:
            span = end - start + 1
            if depth >= self.config.max_range_splits or span <= self.config.min_block_range:
                raise DiscoveryFailed(
                    f"Range {start}-{end} still too large after {depth} splits",
                    start, end, e,
                ) from e

            size = self._shrink(dex, span)
            outcomes = await asyncio.gather(
                *[
                    self._scan_range(dex, topic, sub_start, sub_end, depth + 1, cancel_event)
                    for sub_start, sub_end in split_range(start, end, size)
                ],
                return_exceptions=True,
            )
            raise_phase_failure(outcomes, cancel_event)
            return [log for chunk in outcomes for log in chunk]
        except Cancelled:
            raise
        except RemoteError as e:
            raise DiscoveryFailed(f"Range {start}-{end} failed: {e}", start, end, e) from e
