#!/usr/bin/env python3
"""
Command-line interface for the pool sync engine.

Usage:
    python -m cfmm_sync.scripts.run_pool_sync --chain ethereum
    python -m cfmm_sync.scripts.run_pool_sync --chain base --protocols uniswap_v2
    python -m cfmm_sync.scripts.run_pool_sync --chain ethereum --loop --interval 12
    python -m cfmm_sync.scripts.run_pool_sync --chain ethereum --refresh-only
    python -m cfmm_sync.scripts.run_pool_sync --chain ethereum --redis redis://localhost:6379/0
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from ..checkpoint.manager import CheckpointManager
from ..config.manager import get_config
from ..core.orchestrator import SyncOrchestrator, SyncReport
from ..core.storage import FileCheckpointStore, RedisCheckpointStore
from ..dexes.dex import dexes_from_config
from ..fetchers.web3_client import Web3LedgerClient

logger = logging.getLogger(__name__)


def format_report(report: SyncReport) -> None:
    """Format and display a sync report."""
    if report.success:
        logger.info(f"✅ Synced through block {report.synced_through}")
        logger.info(f"📊 {len(report.pools)} pools ({report.new_pool_count} new)")
        if report.warnings:
            logger.warning(f"⚠️  {len(report.warnings)} pools could not be decoded")
            for warning in report.warnings[:10]:
                logger.warning(f"   {warning}")
        if report.duration:
            logger.info(f"⏱️  {report.duration.total_seconds():.1f}s")
    else:
        logger.error(f"❌ Sync failed: {report.error}")
        if report.pending_blocks:
            start, end = report.pending_blocks
            logger.error(f"🔢 Uncommitted block range: {start} → {end}")
        if report.pending_pools:
            logger.error(f"📦 {len(report.pending_pools)} discovered pools not committed")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sync CFMM pool state into a local checkpoint")
    parser.add_argument("--chain", default=None, help="Chain name (default: DEFAULT_CHAIN)")
    parser.add_argument(
        "--protocols",
        nargs="+",
        default=None,
        help="Protocols to sync (default: all supported)",
    )
    parser.add_argument("--checkpoint", default=None, help="Checkpoint key (default: CHECKPOINT_KEY)")
    parser.add_argument("--target-block", type=int, default=None, help="Block to sync through")
    parser.add_argument(
        "--refresh-only",
        action="store_true",
        help="Re-fetch state for checkpointed pools without discovery",
    )
    parser.add_argument("--loop", action="store_true", help="Keep syncing new blocks")
    parser.add_argument("--interval", type=float, default=None, help="Seconds between cycles")
    parser.add_argument("--redis", default=None, help="Store checkpoints in Redis at this URL")
    return parser.parse_args(argv)


async def main(argv: Optional[List[str]] = None) -> int:
    """Run the sync engine once or in a loop."""
    args = parse_args(argv)
    config = get_config()
    chain = args.chain or config.chains.DEFAULT_CHAIN
    sync_config = config.sync

    dexes = dexes_from_config(config.protocols, chain, args.protocols)
    if not dexes:
        logger.error(f"❌ No dexes configured for {chain}")
        return 1

    if args.redis:
        store = RedisCheckpointStore({"url": args.redis, "key_prefix": f"{chain}:"})
    else:
        store = FileCheckpointStore({
            "base_path": config.chains.get_data_directory(chain),
            "backup_count": sync_config.CHECKPOINT_BACKUP_COUNT,
        })

    ledger = Web3LedgerClient(
        config.chains.get_rpc_url(chain),
        multicall_address=config.chains.get_multicall_address(chain),
        timeout=config.chains.RPC_TIMEOUT_SECONDS,
    )

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            pass

    try:
        async with store:
            orchestrator = SyncOrchestrator(
                dexes,
                ledger,
                CheckpointManager(store, args.checkpoint or sync_config.CHECKPOINT_KEY),
                sync_config=sync_config,
            )
            await orchestrator.load_checkpoint()

            if args.refresh_only:
                report = await orchestrator.refresh(args.target_block, cancel_event=stop_event)
                format_report(report)
                return 0 if report.success else 1

            if args.loop:
                async for report in orchestrator.run(args.interval, stop_event=stop_event):
                    format_report(report)
                return 0

            report = await orchestrator.run_cycle(args.target_block, cancel_event=stop_event)
            format_report(report)
            return 0 if report.success else 1

    except Exception as e:
        logger.exception(f"❌ Fatal error in pool sync: {e}")
        return 1

    finally:
        await ledger.close()


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
