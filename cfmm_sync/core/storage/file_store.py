"""
File checkpoint store with atomic writes and backup rotation.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import Any, Dict, Optional

from .base import CheckpointNotFound, CheckpointStore, DataError

logger = logging.getLogger(__name__)


class FileCheckpointStore(CheckpointStore):
    """
    Checkpoint store keeping one file per key under a base directory.

    Features:
    - Atomic writes (temp file, fsync, os.replace)
    - Backup rotation
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize file store.

        Args:
            config: Configuration with keys:
                - base_path: Base directory for checkpoint files
                - backup_count: Number of backups to keep (default: 2)
        """
        super().__init__(config)
        self.base_path = Path(self.config.get('base_path', './data'))
        self.backup_count = self.config.get('backup_count', 2)

    async def connect(self) -> None:
        """Ensure base directory exists."""
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.is_connected = True
        logger.info(f"File checkpoint store initialized at {self.base_path}")

    def _get_full_path(self, key: str) -> Path:
        if not key or '/' in key or '\\' in key or key.startswith('.'):
            raise DataError(f"Invalid checkpoint key: {key!r}")
        return self.base_path / f"{key}.json"

    async def load_bytes(self, key: str) -> bytes:
        filepath = self._get_full_path(key)
        try:
            with open(filepath, 'rb') as f:
                data = f.read()
        except FileNotFoundError:
            raise CheckpointNotFound(key)
        except OSError as e:
            logger.error(f"Failed to read checkpoint {filepath}: {e}")
            raise DataError(f"Checkpoint load failed: {e}")

        logger.debug(f"Loaded {len(data)} bytes from {filepath}")
        return data

    async def save_bytes(self, key: str, data: bytes) -> None:
        filepath = self._get_full_path(key)
        temp_path = filepath.with_suffix('.tmp')

        try:
            filepath.parent.mkdir(parents=True, exist_ok=True)

            if filepath.exists() and self.backup_count > 0:
                self._rotate_backups(filepath)

            # Atomic write with temporary file
            with open(temp_path, 'wb') as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, filepath)

        except OSError as e:
            logger.error(f"Failed to save checkpoint {filepath}: {e}")
            if temp_path.exists():
                temp_path.unlink()
            raise DataError(f"Checkpoint save failed: {e}")

        logger.info(f"Saved checkpoint to {filepath}")

    async def load_backup(self, key: str, backup_index: int = 1) -> bytes:
        """
        Load bytes from a rotated backup (1 = most recent backup).
        """
        filepath = self._get_full_path(key)
        backup_path = filepath.with_suffix(f'.backup{backup_index}{filepath.suffix}')
        try:
            with open(backup_path, 'rb') as f:
                return f.read()
        except FileNotFoundError:
            raise CheckpointNotFound(f"{key} (backup {backup_index})")

    def _rotate_backups(self, filepath: Path) -> None:
        """
        Rotate backup files, keeping only backup_count versions.

        Args:
            filepath: Path to the main file
        """
        # Move existing backups
        for i in range(self.backup_count - 1, 0, -1):
            old_backup = filepath.with_suffix(f'.backup{i}{filepath.suffix}')
            new_backup = filepath.with_suffix(f'.backup{i+1}{filepath.suffix}')

            if old_backup.exists():
                os.replace(old_backup, new_backup)

        # Copy current file to backup1
        backup1 = filepath.with_suffix(f'.backup1{filepath.suffix}')
        shutil.copy2(filepath, backup1)
