"""
Checkpoint stores for the sync engine.

The engine only needs atomic byte load/save under a key:
- FileCheckpointStore for local runs (atomic file replace, backups)
- RedisCheckpointStore for shared deployments

Usage:
    from cfmm_sync.core.storage import FileCheckpointStore

    store = FileCheckpointStore({'base_path': './data'})
    await store.connect()
    await store.save_bytes('cfmm_checkpoint', payload)
"""

from .base import CheckpointNotFound, CheckpointStore, ConnectionError, DataError, StorageError
from .file_store import FileCheckpointStore
from .redis_store import RedisCheckpointStore

__all__ = [
    "CheckpointStore",
    "StorageError",
    "ConnectionError",
    "DataError",
    "CheckpointNotFound",
    "FileCheckpointStore",
    "RedisCheckpointStore",
]
