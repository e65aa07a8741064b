"""
Base classes and types for the sync orchestrator.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional, Tuple

from ...batchers.errors import Cancelled
from ...dexes.errors import DecodeError
from ...pools.types import Pool

logger = logging.getLogger(__name__)


class SyncState(Enum):
    """Sync cycle state."""
    IDLE = "idle"
    DISCOVERING = "discovering"
    FETCHING = "fetching"
    COMMITTING = "committing"
    FAILED = "failed"


class SyncError(Exception):
    """Base exception for orchestrator errors."""
    pass


@dataclass
class SyncReport:
    """
    Result of one sync cycle or refresh.

    On failure the checkpoint is untouched; pending_blocks and pending_pools
    describe the progress that was not committed.
    """
    state: SyncState
    synced_through: Optional[int]
    target_block: Optional[int] = None
    pools: List[Pool] = field(default_factory=list)
    warnings: List[DecodeError] = field(default_factory=list)
    new_pool_count: int = 0
    error: Optional[Exception] = None
    pending_blocks: Optional[Tuple[int, int]] = None
    pending_pools: List[str] = field(default_factory=list)
    start_time: datetime = field(default_factory=datetime.utcnow)
    end_time: Optional[datetime] = None

    @property
    def success(self) -> bool:
        """Check if the cycle committed."""
        return self.error is None and self.state != SyncState.FAILED

    @property
    def cancelled(self) -> bool:
        return isinstance(self.error, Cancelled)

    @property
    def duration(self) -> Optional[timedelta]:
        """Calculate cycle duration."""
        if self.start_time and self.end_time:
            return self.end_time - self.start_time
        return None

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error
