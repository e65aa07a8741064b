"""
Base classes and interfaces for checkpoint store implementations.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
import logging

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Base exception for storage-related errors."""
    pass


class ConnectionError(StorageError):
    """Raised when connection to storage backend fails."""
    pass


class DataError(StorageError):
    """Raised when data operations fail."""
    pass


class CheckpointNotFound(StorageError):
    """Raised when no checkpoint exists under the requested key."""

    def __init__(self, key: str):
        super().__init__(f"No checkpoint stored under '{key}'")
        self.key = key


class CheckpointStore(ABC):
    """
    Abstract byte store for checkpoints.

    save_bytes must be atomic: a reader sees either the previous value or
    the new one, never a partial write.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize store with configuration.

        Args:
            config: Configuration dictionary for the storage backend
        """
        self.config = config or {}
        self.is_connected = False

    async def connect(self) -> None:
        """Establish connection to the storage backend."""
        self.is_connected = True

    async def disconnect(self) -> None:
        """Close connection to the storage backend."""
        self.is_connected = False

    @abstractmethod
    async def load_bytes(self, key: str) -> bytes:
        """
        Load the bytes stored under key.

        Raises:
            CheckpointNotFound: Nothing is stored under key
            DataError: The backend failed
        """
        pass

    @abstractmethod
    async def save_bytes(self, key: str, data: bytes) -> None:
        """Atomically replace the bytes stored under key."""
        pass

    async def __aenter__(self):
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.disconnect()
