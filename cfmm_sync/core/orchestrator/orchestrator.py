"""
Sync orchestrator: discovery, state fetch and checkpoint commit per cycle.
"""

import asyncio
import logging
import time
from dataclasses import replace
from datetime import datetime
from typing import AsyncIterator, Callable, Dict, Iterable, List, Optional, Tuple, Union

from ...batchers.base import BatchConfig, DiscoveryResult, raise_phase_failure
from ...batchers.discovery import PoolDiscoveryBatcher
from ...batchers.errors import BatchError
from ...batchers.pool_state import PoolStateBatcher
from ...batchers.throttle import RequestThrottle, ThrottleConfig
from ...checkpoint.checkpoint import Checkpoint, CheckpointCorrupt, CheckpointError, DexCheckpoint
from ...checkpoint.manager import CheckpointManager
from ...config.sync import SyncConfig
from ...dexes.dex import Dex, DexRegistry, PoolIdentity
from ...dexes.errors import DecodeError
from ...pools.types import Pool
from ..storage.base import StorageError
from .base import SyncError, SyncReport, SyncState

logger = logging.getLogger(__name__)

_RUNNING_STATES = (SyncState.DISCOVERING, SyncState.FETCHING, SyncState.COMMITTING)


class SyncOrchestrator:
    """
    Drives the pool sync pipeline.

    Each cycle discovers pools created since every dex's frontier, fetches
    state for known and new pools at one target block, then saves the
    checkpoint and swaps in the new pool set. Nothing is committed unless
    every phase completed; decode warnings never block a commit.

    Example:
        orchestrator = SyncOrchestrator(dexes, ledger, CheckpointManager(store))
        await orchestrator.load_checkpoint()
        report = await orchestrator.run_cycle()
    """

    def __init__(
        self,
        dexes: Union[DexRegistry, Iterable[Dex]],
        ledger,
        checkpoint_manager: CheckpointManager,
        sync_config: Optional[SyncConfig] = None,
        throttle: Optional[RequestThrottle] = None,
        batch_config: Optional[BatchConfig] = None,
        discovery_batcher: Optional[PoolDiscoveryBatcher] = None,
        state_batcher: Optional[PoolStateBatcher] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.registry = dexes if isinstance(dexes, DexRegistry) else DexRegistry(list(dexes))
        self.ledger = ledger
        self.checkpoint_manager = checkpoint_manager
        self.sync_config = sync_config or SyncConfig()
        self.throttle = throttle or RequestThrottle(ThrottleConfig.from_sync_config(self.sync_config))

        batch_config = batch_config or BatchConfig.from_sync_config(self.sync_config)
        self.discovery = discovery_batcher or PoolDiscoveryBatcher(ledger, self.throttle, batch_config)
        self.state_batcher = state_batcher or PoolStateBatcher(ledger, self.throttle, batch_config)
        self._clock = clock

        self._state = SyncState.IDLE
        self._checkpoint: Optional[Checkpoint] = None
        self._pools: Dict[str, Pool] = {}

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def checkpoint(self) -> Optional[Checkpoint]:
        return self._checkpoint

    @property
    def pools(self) -> List[Pool]:
        return list(self._pools.values())

    def get_pool(self, address: str) -> Optional[Pool]:
        return self._pools.get(address.lower())

    async def load_checkpoint(self) -> Checkpoint:
        """
        Load the stored checkpoint and align it with the configured dexes.

        Corrupt entries restart their dex at its creation block; a checkpoint
        from a newer format version is re-raised unless
        RESET_ON_NEWER_CHECKPOINT is set.
        """
        try:
            loaded = await self.checkpoint_manager.load()
        except CheckpointCorrupt as e:
            if e.newer_version:
                if not self.sync_config.RESET_ON_NEWER_CHECKPOINT:
                    raise
                logger.warning(f"Discarding newer-version checkpoint: {e.reason}")
                loaded = None
            elif e.partial is not None:
                logger.warning(
                    f"Recovered {len(e.partial.dexes)} dex entries; resyncing "
                    f"{e.corrupt_dex_ids} from genesis"
                )
                loaded = e.partial
            else:
                logger.error(f"Checkpoint unreadable ({e.reason}); resyncing all dexes from genesis")
                loaded = None

        base = loaded or Checkpoint.empty()
        entries = []
        for dex in self.registry:
            entry = base.dex_checkpoint(dex.dex_id)
            if entry is None:
                logger.info(f"{dex.dex_id} starts at genesis block {dex.creation_block}")
                entry = DexCheckpoint(dex=dex)
            elif entry.dex != dex:
                logger.warning(f"Configuration for {dex.dex_id} changed; keeping its progress")
                entry = replace(entry, dex=dex)
            entries.append(entry)

        # Entries for dexes no longer configured are carried forward untouched
        for entry in base.dexes:
            if entry.dex_id not in self.registry:
                entries.append(entry)

        self._checkpoint = replace(base, dexes=tuple(entries))
        return self._checkpoint

    def _active_entries(self) -> List[DexCheckpoint]:
        return [entry for entry in self._checkpoint.dexes if entry.dex_id in self.registry]

    def _carried_entries(self) -> List[DexCheckpoint]:
        return [entry for entry in self._checkpoint.dexes if entry.dex_id not in self.registry]

    async def _resolve_target(self, target_block: Optional[int], cancel_event) -> int:
        frontier = self._checkpoint.synced_through
        if target_block is not None:
            if frontier is not None and target_block < frontier:
                raise ValueError(
                    f"Target block {target_block} is below the synced frontier {frontier}"
                )
            return target_block

        latest = await self.discovery.latest_block(cancel_event)
        if frontier is not None and latest < frontier:
            logger.warning(f"Latest block {latest} is behind frontier {frontier}; holding at frontier")
            return frontier
        return latest

    async def _discover_all(
        self, target_block: int, cancel_event: Optional[asyncio.Event]
    ) -> Dict[str, DiscoveryResult]:
        entries = self._active_entries()
        outcomes = await asyncio.gather(
            *[
                self.discovery.discover(entry.dex, entry.next_block, target_block, cancel_event)
                for entry in entries
            ],
            return_exceptions=True,
        )
        raise_phase_failure(outcomes, cancel_event)
        return {entry.dex_id: outcome for entry, outcome in zip(entries, outcomes)}

    async def _fetch_all(
        self,
        identities_by_dex: Dict[str, List[PoolIdentity]],
        block_identifier: int,
        cancel_event: Optional[asyncio.Event],
    ) -> Tuple[List[Pool], List[DecodeError]]:
        dex_ids = [dex_id for dex_id, identities in identities_by_dex.items() if identities]
        outcomes = await asyncio.gather(
            *[
                self.state_batcher.fetch_state(
                    self.registry.get(dex_id), identities_by_dex[dex_id], block_identifier, cancel_event
                )
                for dex_id in dex_ids
            ],
            return_exceptions=True,
        )
        raise_phase_failure(outcomes, cancel_event)

        pools = []
        warnings = []
        for outcome in outcomes:
            pools.extend(outcome.pools)
            warnings.extend(outcome.warnings)
        return pools, warnings

    def _claim(self, state: SyncState) -> None:
        if self._state in _RUNNING_STATES:
            raise SyncError(f"Sync cycle already running ({self._state.value})")
        self._state = state

    def _release(self) -> None:
        # Anything raised out of a cycle leaves the orchestrator idle
        if self._state in _RUNNING_STATES:
            self._state = SyncState.IDLE

    def _failed(self, report: SyncReport, error: Exception) -> SyncReport:
        self._state = SyncState.FAILED
        report.state = SyncState.FAILED
        report.error = error
        report.pools = self.pools
        report.end_time = datetime.utcnow()
        logger.error(f"❌ Sync cycle to block {report.target_block} failed: {error}")
        return report

    async def run_cycle(
        self,
        target_block: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> SyncReport:
        """
        Run one discovery, fetch and commit cycle.

        Args:
            target_block: Block to sync through (default: latest)
            cancel_event: Stops new dispatches once set; the cycle then fails
                with Cancelled and the checkpoint is left untouched

        Returns:
            SyncReport; on failure state is FAILED and error is set. A
            checkpoint that cannot be loaded fails the cycle the same way.

        Raises:
            ValueError: target_block is below the synced frontier
            SyncError: A cycle is already running
        """
        self._claim(SyncState.DISCOVERING)
        try:
            return await self._cycle(target_block, cancel_event)
        finally:
            self._release()

    async def _ensure_checkpoint(self) -> None:
        if self._checkpoint is None:
            await self.load_checkpoint()

    async def _cycle(self, target_block: Optional[int], cancel_event) -> SyncReport:
        report = SyncReport(state=SyncState.DISCOVERING, synced_through=None)
        try:
            await self._ensure_checkpoint()
        except (StorageError, CheckpointError) as e:
            return self._failed(report, e)

        frontier = self._checkpoint.synced_through
        report.synced_through = frontier

        try:
            target_block = await self._resolve_target(target_block, cancel_event)
        except BatchError as e:
            return self._failed(report, e)
        report.target_block = target_block

        entries = self._active_entries()
        if entries:
            report.pending_blocks = (min(entry.next_block for entry in entries), target_block)

        logger.info(f"Sync cycle to block {target_block} (frontier {frontier})")

        # Discovering
        self._state = SyncState.DISCOVERING
        try:
            discoveries = await self._discover_all(target_block, cancel_event)
        except BatchError as e:
            return self._failed(report, e)

        identities_by_dex: Dict[str, List[PoolIdentity]] = {}
        new_count = 0
        for entry in entries:
            known = list(entry.pools)
            seen = {identity.address.lower() for identity in known}
            result = discoveries[entry.dex_id]
            report.warnings.extend(result.warnings)
            for identity in result.identities:
                if identity.address.lower() in seen:
                    continue
                seen.add(identity.address.lower())
                known.append(identity)
                report.pending_pools.append(identity.address)
                new_count += 1
            identities_by_dex[entry.dex_id] = known

        # Fetching
        self._state = SyncState.FETCHING
        report.state = SyncState.FETCHING
        try:
            pools, warnings = await self._fetch_all(identities_by_dex, target_block, cancel_event)
        except BatchError as e:
            return self._failed(report, e)
        report.warnings.extend(warnings)

        # Committing
        self._state = SyncState.COMMITTING
        report.state = SyncState.COMMITTING
        fetched = {pool.address.lower(): pool for pool in pools}

        committed_entries = []
        for entry in entries:
            updated = []
            for identity in identities_by_dex[entry.dex_id]:
                pool = fetched.get(identity.address.lower())
                if pool is not None and not identity.has_decimals:
                    identity = identity.with_decimals(pool.decimals0, pool.decimals1)
                updated.append(identity)
            committed_entries.append(
                DexCheckpoint(dex=entry.dex, synced_through=target_block, pools=tuple(updated))
            )

        checkpoint = self._checkpoint.advanced(
            target_block,
            committed_entries + self._carried_entries(),
            timestamp=int(self._clock()),
        )
        try:
            await self.checkpoint_manager.save(checkpoint)
        except (StorageError, CheckpointError) as e:
            return self._failed(report, e)

        self._checkpoint = checkpoint
        self._pools = fetched
        self._state = SyncState.IDLE

        report.state = SyncState.IDLE
        report.synced_through = target_block
        report.pools = self.pools
        report.new_pool_count = new_count
        report.pending_blocks = None
        report.pending_pools = []
        report.end_time = datetime.utcnow()

        logger.info(
            f"✅ Synced through block {target_block}: {len(fetched)} pools "
            f"({new_count} new, {len(report.warnings)} warnings)"
        )
        return report

    async def refresh(
        self,
        target_block: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> SyncReport:
        """
        Re-fetch state for checkpointed pools without discovery.

        The checkpoint is not modified; only the in-memory pool set is replaced.
        """
        self._claim(SyncState.FETCHING)
        try:
            return await self._refresh(target_block, cancel_event)
        finally:
            self._release()

    async def _refresh(self, target_block: Optional[int], cancel_event) -> SyncReport:
        report = SyncReport(state=SyncState.FETCHING, synced_through=None)
        try:
            await self._ensure_checkpoint()
        except (StorageError, CheckpointError) as e:
            return self._failed(report, e)

        report.synced_through = self._checkpoint.synced_through
        try:
            if target_block is None:
                target_block = await self.discovery.latest_block(cancel_event)
            report.target_block = target_block
            pools, warnings = await self._fetch_all(
                {entry.dex_id: list(entry.pools) for entry in self._active_entries()},
                target_block,
                cancel_event,
            )
        except BatchError as e:
            return self._failed(report, e)

        self._pools = {pool.address.lower(): pool for pool in pools}
        self._state = SyncState.IDLE
        report.state = SyncState.IDLE
        report.pools = self.pools
        report.warnings = warnings
        report.end_time = datetime.utcnow()
        logger.info(f"✅ Refreshed {len(pools)} pools at block {target_block}")
        return report

    async def run(
        self,
        poll_interval: Optional[float] = None,
        stop_event: Optional[asyncio.Event] = None,
        max_cycles: Optional[int] = None,
    ) -> AsyncIterator[SyncReport]:
        """
        Run cycles until stop_event is set or max_cycles is reached.

        Yields:
            SyncReport per cycle
        """
        interval = self.sync_config.POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        cycles = 0

        while stop_event is None or not stop_event.is_set():
            report = await self.run_cycle(cancel_event=stop_event)
            yield report

            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                return

            if stop_event is None:
                await asyncio.sleep(interval)
            else:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=interval)
                except asyncio.TimeoutError:
                    pass
