"""Per-channel token buckets gating outbound provider calls."""

from __future__ import annotations

import asyncio
import math
import threading
import time
from collections.abc import Callable, Mapping

from loguru import logger

from answer_relay.config import BucketConfig, RateLimitConfig


class TokenBucket:
    """Lazily refilled token bucket owned by one upstream channel.

    Refill adds `tokens_per_interval` for every whole interval elapsed and moves
    `last_refill` forward by exactly those intervals, so partial intervals keep
    accruing instead of being dropped. Every read-modify-write of the token
    count happens under `_lock`; sleeping never does.
    """

    def __init__(
        self,
        name: str,
        config: BucketConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.capacity = config.capacity
        self.tokens_per_interval = config.tokens_per_interval
        self.interval_seconds = config.interval_ms / 1000.0
        self._clock = clock
        self._lock = threading.Lock()
        self._tokens = float(config.capacity)
        self._last_refill = clock()

    @property
    def tokens(self) -> float:
        with self._lock:
            return self._tokens

    @property
    def wait_seconds(self) -> float:
        return self.interval_seconds / self.tokens_per_interval

    def try_acquire(self) -> bool:
        """Debit one token if available; never waits."""
        with self._lock:
            self._refill()
            if self._tokens >= 1:
                self._tokens -= 1
                return True
            return False

    async def acquire(self, sleep: Callable[[float], object] | None = None) -> None:
        """Suspend until a token is available, then debit it."""
        sleeper = sleep or asyncio.sleep
        waited = 0
        while not self.try_acquire():
            waited += 1
            await sleeper(self.wait_seconds)
        if waited:
            logger.debug("Rate limiter '{}' admitted after {} waits", self.name, waited)

    def acquire_sync(self, sleep: Callable[[float], None] = time.sleep) -> None:
        """Blocking variant for callers running on worker threads."""
        while not self.try_acquire():
            sleep(self.wait_seconds)

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        intervals = math.floor(elapsed / self.interval_seconds)
        if intervals <= 0:
            return
        self._tokens = min(
            float(self.capacity), self._tokens + intervals * self.tokens_per_interval
        )
        self._last_refill += intervals * self.interval_seconds


class RateLimiter:
    """Holds one independent bucket per named upstream channel.

    Built once per process and passed explicitly to whoever calls providers.
    There is no bound on queued waiters; callers needing bounded latency wrap
    `acquire` in their own timeout. A token consumed by an abandoned caller is
    not refunded.
    """

    def __init__(
        self,
        channels: Mapping[str, BucketConfig],
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], object] | None = None,
    ) -> None:
        self._buckets = {
            name: TokenBucket(name, config, clock=clock) for name, config in channels.items()
        }
        self._sleep = sleep

    @classmethod
    def from_config(cls, config: RateLimitConfig | None = None) -> "RateLimiter":
        return cls((config or RateLimitConfig()).channels())

    def bucket(self, channel: str) -> TokenBucket:
        bucket = self._buckets.get(channel)
        if bucket is None:
            raise KeyError(f"Unknown rate limit channel: {channel}")
        return bucket

    def channels(self) -> list[str]:
        return list(self._buckets)

    async def acquire(self, channel: str) -> None:
        await self.bucket(channel).acquire(self._sleep)

    def try_acquire(self, channel: str) -> bool:
        return self.bucket(channel).try_acquire()

    def acquire_sync(self, channel: str) -> None:
        self.bucket(channel).acquire_sync()
