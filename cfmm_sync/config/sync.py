"""
Synchronization engine configuration: throttling, batching and checkpoints.

Chunking and retry factors are policy knobs whose right values depend on the
RPC provider, so every one of them can be overridden from the environment.
"""

from dataclasses import dataclass

from .base import BaseConfig, ConfigError


@dataclass
class SyncConfig(BaseConfig):
    """Throttle, batch and checkpoint settings for the sync engine."""

    # Throttle (AIMD) settings
    MAX_REQUESTS_PER_SECOND: float = BaseConfig.get_env_float("MAX_REQUESTS_PER_SECOND", 25.0)
    MIN_REQUESTS_PER_SECOND: float = BaseConfig.get_env_float("MIN_REQUESTS_PER_SECOND", 1.0)
    MAX_CONCURRENT_REQUESTS: int = BaseConfig.get_env_int("MAX_CONCURRENT_REQUESTS", 8)
    RATE_LIMIT_COOLDOWN_SECONDS: float = BaseConfig.get_env_float("RATE_LIMIT_COOLDOWN_SECONDS", 2.0)
    SUCCESS_STREAK_FOR_INCREASE: int = BaseConfig.get_env_int("SUCCESS_STREAK_FOR_INCREASE", 20)
    RATE_ADDITIVE_INCREASE: float = BaseConfig.get_env_float("RATE_ADDITIVE_INCREASE", 1.0)

    # Discovery chunking
    BLOCKS_PER_REQUEST: int = BaseConfig.get_env_int("BLOCKS_PER_REQUEST", 10000)
    MIN_BLOCKS_PER_REQUEST: int = BaseConfig.get_env_int("MIN_BLOCKS_PER_REQUEST", 1)
    RANGE_SHRINK_FACTOR: int = BaseConfig.get_env_int("RANGE_SHRINK_FACTOR", 2)
    RANGE_GROW_FACTOR: float = BaseConfig.get_env_float("RANGE_GROW_FACTOR", 1.25)
    MAX_RANGE_SPLITS: int = BaseConfig.get_env_int("MAX_RANGE_SPLITS", 8)

    # State fetch batching
    MAX_CALLS_PER_BATCH: int = BaseConfig.get_env_int("MAX_CALLS_PER_BATCH", 500)
    TICK_BITMAP_WORD_RADIUS: int = BaseConfig.get_env_int("TICK_BITMAP_WORD_RADIUS", 2)

    # Retry policy
    MAX_RETRY_ATTEMPTS: int = BaseConfig.get_env_int("MAX_RETRY_ATTEMPTS", 5)
    RETRY_BASE_DELAY_SECONDS: float = BaseConfig.get_env_float("RETRY_BASE_DELAY_SECONDS", 1.0)
    RETRY_MAX_DELAY_SECONDS: float = BaseConfig.get_env_float("RETRY_MAX_DELAY_SECONDS", 60.0)

    # Checkpointing
    CHECKPOINT_KEY: str = BaseConfig.get_env("CHECKPOINT_KEY", "cfmm_checkpoint")
    CHECKPOINT_BACKUP_COUNT: int = BaseConfig.get_env_int("CHECKPOINT_BACKUP_COUNT", 2)
    RESET_ON_NEWER_CHECKPOINT: bool = BaseConfig.get_env_bool("RESET_ON_NEWER_CHECKPOINT", False)
    POLL_INTERVAL_SECONDS: float = BaseConfig.get_env_float("POLL_INTERVAL_SECONDS", 12.0)

    def _validate_config(self):
        """Validate sync settings on top of the base checks."""
        super()._validate_config()
        if self.MAX_REQUESTS_PER_SECOND < 0:
            raise ConfigError("MAX_REQUESTS_PER_SECOND must be non-negative (0 disables rate limiting)")
        if self.MAX_REQUESTS_PER_SECOND > 0 and not 0 < self.MIN_REQUESTS_PER_SECOND <= self.MAX_REQUESTS_PER_SECOND:
            raise ConfigError("MIN_REQUESTS_PER_SECOND must be in (0, MAX_REQUESTS_PER_SECOND]")
        if self.MAX_CONCURRENT_REQUESTS < 1:
            raise ConfigError("MAX_CONCURRENT_REQUESTS must be at least 1")
        if self.RANGE_SHRINK_FACTOR < 2:
            raise ConfigError("RANGE_SHRINK_FACTOR must be at least 2")
        if self.RANGE_GROW_FACTOR < 1:
            raise ConfigError("RANGE_GROW_FACTOR must be at least 1")
        if not 1 <= self.MIN_BLOCKS_PER_REQUEST <= self.BLOCKS_PER_REQUEST:
            raise ConfigError("MIN_BLOCKS_PER_REQUEST must be in [1, BLOCKS_PER_REQUEST]")
        if self.MAX_CALLS_PER_BATCH < 1:
            raise ConfigError("MAX_CALLS_PER_BATCH must be at least 1")
        if self.MAX_RETRY_ATTEMPTS < 1:
            raise ConfigError("MAX_RETRY_ATTEMPTS must be at least 1")
