"""
Checkpoint load/save against a CheckpointStore.
"""

import logging
from typing import Optional

from ..core.storage.base import CheckpointNotFound, CheckpointStore
from .checkpoint import Checkpoint, CheckpointCorrupt, CheckpointError

logger = logging.getLogger(__name__)


class CheckpointManager:
    """
    Loads and saves checkpoints under one store key.

    Saves never move the frontier backwards relative to the last checkpoint
    this manager loaded or saved.
    """

    def __init__(self, store: CheckpointStore, key: str = "cfmm_checkpoint"):
        self.store = store
        self.key = key
        self._frontier: Optional[int] = None

    @property
    def frontier(self) -> Optional[int]:
        return self._frontier

    async def load(self) -> Optional[Checkpoint]:
        """
        Load the stored checkpoint.

        Returns:
            Checkpoint, or None when nothing is stored under the key

        Raises:
            CheckpointCorrupt: Stored bytes failed validation
        """
        try:
            data = await self.store.load_bytes(self.key)
        except CheckpointNotFound:
            logger.info(f"No checkpoint under '{self.key}', starting fresh")
            return None

        try:
            checkpoint = Checkpoint.from_bytes(data)
        except CheckpointCorrupt as e:
            if e.partial is not None:
                self._frontier = e.partial.synced_through
            logger.error(f"Checkpoint '{self.key}' is corrupt: {e.reason}")
            raise

        self._frontier = checkpoint.synced_through
        logger.info(
            f"Loaded checkpoint '{self.key}': synced through {checkpoint.synced_through}, "
            f"{len(checkpoint.dexes)} dexes, {checkpoint.pool_count} pools"
        )
        return checkpoint

    async def save(self, checkpoint: Checkpoint) -> None:
        """
        Persist a checkpoint atomically.

        Raises:
            CheckpointError: The checkpoint would move the frontier backwards
        """
        if self._frontier is not None and (
            checkpoint.synced_through is None or checkpoint.synced_through < self._frontier
        ):
            raise CheckpointError(
                f"Refusing to move checkpoint frontier back from {self._frontier} "
                f"to {checkpoint.synced_through}"
            )

        await self.store.save_bytes(self.key, checkpoint.to_bytes())
        self._frontier = checkpoint.synced_through
        logger.info(
            f"Saved checkpoint '{self.key}' through block {checkpoint.synced_through} "
            f"({checkpoint.pool_count} pools)"
        )
