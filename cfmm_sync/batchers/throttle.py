"""
Request throttle guarding every outbound batched call.

Admission is a counting semaphore for concurrency plus a token bucket for the
request rate. The rate budget follows AIMD: halved on every rate-limit
signal, raised additively after a streak of successes. One instance lives
for one sync run and is passed explicitly to the batchers.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class ThrottleConfig:
    """
    Throttle settings.

    A max_rate of 0 disables rate limiting; concurrency and rate-limit
    cooldowns still apply.

    Budgets count provider requests. Each multicall batch is charged a flat
    one request (the batchers acquire with n_requests=1) no matter how many
    calls it carries, so max_rate is aggregates per second, not pool reads.
    """

    max_rate: float = 25.0
    min_rate: float = 1.0
    initial_rate: Optional[float] = None
    max_concurrent: int = 8
    cooldown_seconds: float = 2.0
    success_streak: int = 20
    additive_increase: float = 1.0

    def __post_init__(self):
        if self.max_rate < 0:
            raise ValueError("max_rate must be non-negative")
        if self.max_rate > 0 and not 0 < self.min_rate <= self.max_rate:
            raise ValueError("min_rate must be in (0, max_rate]")
        if self.max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        if self.success_streak < 1:
            raise ValueError("success_streak must be at least 1")

    @classmethod
    def from_sync_config(cls, config) -> "ThrottleConfig":
        return cls(
            max_rate=config.MAX_REQUESTS_PER_SECOND,
            min_rate=config.MIN_REQUESTS_PER_SECOND,
            max_concurrent=config.MAX_CONCURRENT_REQUESTS,
            cooldown_seconds=config.RATE_LIMIT_COOLDOWN_SECONDS,
            success_streak=config.SUCCESS_STREAK_FOR_INCREASE,
            additive_increase=config.RATE_ADDITIVE_INCREASE,
        )


class RequestThrottle:
    """
    Rate and concurrency governor for remote calls.

    Example:
        async with throttle.acquire(1):
            result = await ledger.call_aggregate(...)
    """

    def __init__(
        self,
        config: Optional[ThrottleConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config or ThrottleConfig()
        self._clock = clock
        self._sleep = sleep

        rate = self.config.initial_rate or self.config.max_rate
        self.current_rate_budget = min(rate, self.config.max_rate)
        self.in_flight_count = 0
        self.backoff_until = 0.0
        self.success_streak = 0

        self._tokens = self._capacity
        self._last_refill = clock()
        self._semaphore = asyncio.Semaphore(self.config.max_concurrent)
        self._admission = asyncio.Lock()

    @property
    def rate_limited(self) -> bool:
        return self.config.max_rate > 0

    @property
    def _capacity(self) -> float:
        return max(1.0, self.current_rate_budget)

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._last_refill = now
        self._tokens = min(self._capacity, self._tokens + elapsed * self.current_rate_budget)

    async def _wait_for_budget(self, n_requests: int) -> None:
        # One waiter at a time so admission stays first come, first served
        async with self._admission:
            while True:
                now = self._clock()
                if now < self.backoff_until:
                    await self._sleep(self.backoff_until - now)
                    continue
                if not self.rate_limited:
                    return

                self._refill()
                # Requests larger than the bucket go into debt once it is full
                needed = min(n_requests, self._capacity)
                if self._tokens >= needed:
                    self._tokens -= n_requests
                    return
                await self._sleep((needed - self._tokens) / self.current_rate_budget)

    @asynccontextmanager
    async def acquire(self, n_requests: int = 1):
        """
        Suspend until a concurrency slot and rate budget are available.

        Args:
            n_requests: Number of remote requests the permit covers
        """
        if n_requests < 1:
            raise ValueError(f"n_requests must be positive, got {n_requests}")

        async with self._semaphore:
            await self._wait_for_budget(n_requests)
            self.in_flight_count += 1
            try:
                yield self
            finally:
                self.in_flight_count -= 1

    def report_rate_limited(self, retry_after: Optional[float] = None) -> None:
        """Halve the rate budget and block admission for the cooldown window."""
        if self.rate_limited:
            self._refill()
            self.current_rate_budget = max(self.config.min_rate, self.current_rate_budget / 2)
            self._tokens = min(self._tokens, self._capacity)

        self.success_streak = 0
        cooldown = self.config.cooldown_seconds if retry_after is None else retry_after
        self.backoff_until = max(self.backoff_until, self._clock() + cooldown)

        logger.warning(
            f"Rate limited: budget now {self.current_rate_budget:.2f} req/s, "
            f"backing off {cooldown:.2f}s"
        )

    def report_success(self) -> None:
        """Count a success; raise the budget additively after a full streak."""
        self.success_streak += 1
        if self.success_streak < self.config.success_streak:
            return

        self.success_streak = 0
        if self.rate_limited and self.current_rate_budget < self.config.max_rate:
            self._refill()
            self.current_rate_budget = min(
                self.config.max_rate,
                self.current_rate_budget + self.config.additive_increase,
            )
            logger.debug(f"Rate budget raised to {self.current_rate_budget:.2f} req/s")

    def snapshot(self) -> Dict[str, Any]:
        return {
            "current_rate_budget": self.current_rate_budget,
            "in_flight_count": self.in_flight_count,
            "backoff_until": self.backoff_until,
            "success_streak": self.success_streak,
        }
