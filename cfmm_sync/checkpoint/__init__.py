"""
Checkpoint: serializable sync progress (frontier block, pools per dex).
"""

from .checkpoint import (
    FORMAT_VERSION,
    Checkpoint,
    CheckpointCorrupt,
    CheckpointError,
    DexCheckpoint,
)
from .manager import CheckpointManager

__all__ = [
    'FORMAT_VERSION',
    'Checkpoint',
    'DexCheckpoint',
    'CheckpointError',
    'CheckpointCorrupt',
    'CheckpointManager',
]
