"""
Redis checkpoint store.
"""

import logging
from typing import Any, Dict, Optional

import redis.asyncio as redis
from redis.asyncio import Redis

from .base import CheckpointNotFound, CheckpointStore, ConnectionError, DataError

logger = logging.getLogger(__name__)


class RedisCheckpointStore(CheckpointStore):
    """
    Checkpoint store keeping each checkpoint under a single Redis key.

    A single SET replaces the value atomically.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, client: Optional[Redis] = None):
        """
        Initialize Redis store.

        Args:
            config: Configuration with keys:
                - url: Redis URL (takes precedence over host/port)
                - host: Redis host
                - port: Redis port
                - password: Redis password (optional)
                - db: Redis database number (default: 0)
                - socket_timeout: Socket timeout in seconds (default: 5)
                - key_prefix: Prefix prepended to checkpoint keys
            client: Pre-built client (connect() then only pings it)
        """
        super().__init__(config)
        self.client: Optional[Redis] = client
        self.key_prefix = self.config.get('key_prefix', '')

    async def connect(self) -> None:
        """Establish connection to Redis."""
        try:
            if self.client is None:
                if self.config.get('url'):
                    self.client = redis.from_url(
                        self.config['url'],
                        socket_timeout=self.config.get('socket_timeout', 5),
                    )
                else:
                    pool_kwargs = {
                        'host': self.config.get('host', 'localhost'),
                        'port': self.config.get('port', 6379),
                        'db': self.config.get('db', 0),
                        'socket_timeout': self.config.get('socket_timeout', 5),
                    }

                    # Only add password if it's actually set
                    password = self.config.get('password')
                    if password is not None:
                        pool_kwargs['password'] = password

                    pool = redis.ConnectionPool(**pool_kwargs)
                    self.client = redis.Redis(connection_pool=pool)

            # Test connection
            await self.client.ping()
            self.is_connected = True
            logger.info("Redis connection established")

        except redis.RedisError as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise ConnectionError(f"Redis connection failed: {e}")

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self.client:
            await self.client.aclose()
            self.client = None

        self.is_connected = False
        logger.info("Redis connection closed")

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def load_bytes(self, key: str) -> bytes:
        if not self.client:
            raise ConnectionError("Not connected to Redis")

        try:
            value = await self.client.get(self._key(key))
        except redis.RedisError as e:
            logger.error(f"Failed to get checkpoint key {key}: {e}")
            raise DataError(f"Checkpoint load failed: {e}")

        if value is None:
            raise CheckpointNotFound(key)
        return value.encode('utf-8') if isinstance(value, str) else bytes(value)

    async def save_bytes(self, key: str, data: bytes) -> None:
        if not self.client:
            raise ConnectionError("Not connected to Redis")

        try:
            await self.client.set(self._key(key), data)
        except redis.RedisError as e:
            logger.error(f"Failed to set checkpoint key {key}: {e}")
            raise DataError(f"Checkpoint save failed: {e}")

        logger.info(f"Saved checkpoint to Redis key {self._key(key)}")
