"""
Sync orchestrator for the pool state engine.

This module drives discovery, batched state fetches and checkpoint commits.

Usage:
    from cfmm_sync.core.orchestrator import SyncOrchestrator

    orchestrator = SyncOrchestrator(dexes, ledger, checkpoint_manager)
    await orchestrator.load_checkpoint()

    # One cycle
    report = await orchestrator.run_cycle()

    # Or poll forever
    async for report in orchestrator.run(stop_event=stop):
        ...
"""

from ...batchers.errors import Cancelled
from .base import SyncError, SyncReport, SyncState
from .orchestrator import SyncOrchestrator

__all__ = [
    'SyncState',
    'SyncReport',
    'SyncError',
    'Cancelled',
    'SyncOrchestrator',
]
