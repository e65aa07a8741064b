"""
Base classes for batched ledger calls.

This module provides the shared configuration, result types and retry loop
for the discovery and state batchers. Every remote call goes through the
RequestThrottle; retries feed the throttle's rate-limit and success signals.
"""

import asyncio
import logging
from abc import ABC
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Hashable, List, Optional, Sequence, Tuple, Union

from ..config.chains import MULTICALL3_ADDRESS
from ..dexes.dex import PoolIdentity
from ..dexes.errors import DecodeError
from ..pools.types import Pool
from .errors import Cancelled, ErrorHandler, RateLimitError
from .throttle import RequestThrottle

logger = logging.getLogger(__name__)


@dataclass
class BatchConfig:
    """Configuration for batch operations."""

    max_block_range: int = 10000
    min_block_range: int = 1
    range_shrink_factor: int = 2
    range_grow_factor: float = 1.25
    max_range_splits: int = 8
    max_calls_per_batch: int = 500
    max_retries: int = 5
    retry_base_delay: float = 1.0
    retry_max_delay: float = 60.0
    tick_bitmap_word_radius: int = 2
    multicall_address: str = MULTICALL3_ADDRESS

    def __post_init__(self):
        if not 1 <= self.min_block_range <= self.max_block_range:
            raise ValueError("min_block_range must be in [1, max_block_range]")
        if self.range_shrink_factor < 2:
            raise ValueError("range_shrink_factor must be at least 2")
        if self.max_calls_per_batch < 1:
            raise ValueError("max_calls_per_batch must be at least 1")
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")

    @classmethod
    def from_sync_config(cls, config, multicall_address: str = MULTICALL3_ADDRESS) -> "BatchConfig":
        return cls(
            max_block_range=config.BLOCKS_PER_REQUEST,
            min_block_range=config.MIN_BLOCKS_PER_REQUEST,
            range_shrink_factor=config.RANGE_SHRINK_FACTOR,
            range_grow_factor=config.RANGE_GROW_FACTOR,
            max_range_splits=config.MAX_RANGE_SPLITS,
            max_calls_per_batch=config.MAX_CALLS_PER_BATCH,
            max_retries=config.MAX_RETRY_ATTEMPTS,
            retry_base_delay=config.RETRY_BASE_DELAY_SECONDS,
            retry_max_delay=config.RETRY_MAX_DELAY_SECONDS,
            tick_bitmap_word_radius=config.TICK_BITMAP_WORD_RADIUS,
            multicall_address=multicall_address,
        )


@dataclass
class DiscoveryResult:
    """Pools created by one dex within a block range."""

    identities: List[PoolIdentity]
    warnings: List[DecodeError] = field(default_factory=list)
    from_block: Optional[int] = None
    to_block: Optional[int] = None


@dataclass
class FetchStateResult:
    """Decoded pool states at one block."""

    pools: List[Pool]
    warnings: List[DecodeError] = field(default_factory=list)
    block_identifier: Union[int, str, None] = None


def split_range(from_block: int, to_block: int, step: int) -> List[Tuple[int, int]]:
    """Split the inclusive range [from_block, to_block] into sub-ranges of at most step blocks."""
    if step < 1:
        raise ValueError(f"step must be positive, got {step}")
    return [
        (start, min(start + step - 1, to_block))
        for start in range(from_block, to_block + 1, step)
    ]


def raise_phase_failure(outcomes: Sequence[Any], cancel_event: Optional[asyncio.Event]) -> None:
    """Raise after all tasks of a gather have finished, cancellation first."""
    if cancel_event is not None and cancel_event.is_set():
        raise Cancelled("Sync cancelled; in-flight batches completed")
    for outcome in outcomes:
        if isinstance(outcome, BaseException):
            raise outcome


class BaseBatcher(ABC):
    """
    Abstract base class for throttled, retried ledger batch operations.
    """

    def __init__(
        self,
        ledger,
        throttle: RequestThrottle,
        config: Optional[BatchConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.ledger = ledger
        self.throttle = throttle
        self.config = config or BatchConfig()
        self._sleep = sleep
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self.error_handler = ErrorHandler(
            self.logger,
            base_delay=self.config.retry_base_delay,
            max_delay=self.config.retry_max_delay,
        )

    def _chunk_calls(self, items: Sequence[Tuple[Hashable, list]]) -> List[List[Tuple[Hashable, list]]]:
        """
        Group (key, calls) items so each group stays under max_calls_per_batch.

        An item larger than the limit on its own still gets a group of its own.
        """
        limit = self.config.max_calls_per_batch
        chunks = []
        current = []
        count = 0

        for key, calls in items:
            if current and count + len(calls) > limit:
                chunks.append(current)
                current = []
                count = 0
            current.append((key, calls))
            count += len(calls)

        if current:
            chunks.append(current)
        return chunks

    @staticmethod
    def _check_cancelled(cancel_event: Optional[asyncio.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise Cancelled("Sync cancelled before dispatch")

    async def _retry_operation(
        self,
        operation,
        *args,
        n_requests: int = 1,
        cancel_event: Optional[asyncio.Event] = None,
        **kwargs,
    ) -> Any:
        """Retry an operation with exponential backoff and intelligent error handling."""
        last_error = None

        for attempt in range(self.config.max_retries):
            self._check_cancelled(cancel_event)
            try:
                async with self.throttle.acquire(n_requests):
                    # Cancellation may arrive while queued on the throttle
                    self._check_cancelled(cancel_event)
                    result = await operation(*args, **kwargs)
                self.throttle.report_success()
                return result
            except Cancelled:
                raise
            except Exception as e:
                error = self.error_handler.to_remote_error(e)
                last_error = error

                # Log error with context
                self.error_handler.log_error(
                    error,
                    {
                        "attempt": attempt + 1,
                        "max_retries": self.config.max_retries,
                        "operation": getattr(operation, "__name__", str(operation)),
                    },
                )

                if isinstance(error, RateLimitError):
                    self.throttle.report_rate_limited(error.retry_after)

                # Check if we should retry this error
                if not self.error_handler.should_retry(error, attempt, self.config.max_retries):
                    if error is e:
                        raise
                    raise error from e

                # Calculate delay based on error type
                delay = self.error_handler.get_retry_delay(error, attempt)
                self.logger.info(
                    f"Retrying in {delay}s... (attempt {attempt + 1}/{self.config.max_retries})"
                )
                await self._sleep(delay)

        # Only reached when max_retries attempts all failed and were retryable
        raise last_error

    async def latest_block(self, cancel_event: Optional[asyncio.Event] = None) -> int:
        """Latest block number, fetched through the throttle with retries."""
        return int(await self._retry_operation(self.ledger.get_block_number, cancel_event=cancel_event))
