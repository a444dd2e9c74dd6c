import asyncio
import math
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from answer_relay.config import BucketConfig, RateLimitConfig
from answer_relay.ratelimit.limiter import RateLimiter, TokenBucket


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _five_per_second() -> BucketConfig:
    return BucketConfig(capacity=5, tokens_per_interval=5, interval_ms=1000)


def test_bucket_stays_within_bounds_for_any_sequence() -> None:
    clock = FakeClock()
    bucket = TokenBucket("search", _five_per_second(), clock=clock)

    steps = [0.0, 0.1, 0.0, 0.7, 1.3, 0.0, 0.0, 2.5, 0.2, 0.0, 0.9, 4.0, 0.0]
    for step in steps * 3:
        clock.advance(step)
        bucket.try_acquire()
        assert 0 <= bucket.tokens <= bucket.capacity


def test_refill_counts_only_whole_intervals_and_keeps_remainder() -> None:
    clock = FakeClock()
    bucket = TokenBucket("search", _five_per_second(), clock=clock)
    for _ in range(5):
        assert bucket.try_acquire()
    assert not bucket.try_acquire()

    clock.advance(0.6)
    assert not bucket.try_acquire()

    # 0.6 + 0.6 crosses exactly one interval boundary; the extra 0.2 carries over.
    clock.advance(0.6)
    assert bucket.try_acquire()
    assert bucket.tokens == 4

    for _ in range(4):
        assert bucket.try_acquire()
    clock.advance(0.9)
    assert bucket.try_acquire()


def test_no_over_admission_within_window() -> None:
    clock = FakeClock()

    async def fake_sleep(seconds: float) -> None:
        clock.advance(seconds)

    limiter = RateLimiter({"search": _five_per_second()}, clock=clock, sleep=fake_sleep)
    start = clock()
    admitted: list[float] = []

    async def _drive() -> None:
        for _ in range(40):
            await limiter.acquire("search")
            admitted.append(clock())

    asyncio.run(_drive())

    window = admitted[-1] - start
    bound = 5 + 5 * math.ceil(window / 1.0)
    assert len(admitted) <= bound
    for end_index in range(len(admitted)):
        in_window = [t for t in admitted if start <= t <= admitted[end_index]]
        width = admitted[end_index] - start
        assert len(in_window) <= 5 + 5 * math.ceil(width / 1.0)


def test_sixth_acquire_is_delayed_by_refill_interval() -> None:
    limiter = RateLimiter({"completions": _five_per_second()})
    stamps: list[float] = []

    async def _drive() -> None:
        for _ in range(10):
            await limiter.acquire("completions")
            stamps.append(time.monotonic())

    asyncio.run(_drive())

    assert len(stamps) == 10
    assert stamps[5] - stamps[4] >= 1.0 / 5


def test_parallel_threads_never_over_debit() -> None:
    clock = FakeClock()
    bucket = TokenBucket("search", _five_per_second(), clock=clock)

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: bucket.try_acquire(), range(50)))

    assert results.count(True) == 5
    assert bucket.tokens == 0


def test_concurrent_async_waiters_all_complete() -> None:
    clock = FakeClock()

    async def fake_sleep(seconds: float) -> None:
        clock.advance(seconds)
        await asyncio.sleep(0)

    limiter = RateLimiter({"search": _five_per_second()}, clock=clock, sleep=fake_sleep)

    async def _drive() -> None:
        await asyncio.gather(*(limiter.acquire("search") for _ in range(12)))

    asyncio.run(_drive())
    assert 0 <= limiter.bucket("search").tokens <= 5


def test_channels_are_independent() -> None:
    clock = FakeClock()
    limiter = RateLimiter(
        {
            "completions": _five_per_second(),
            "search": BucketConfig(capacity=1, tokens_per_interval=1, interval_ms=60000),
        },
        clock=clock,
    )

    assert limiter.try_acquire("search")
    assert not limiter.try_acquire("search")
    assert limiter.try_acquire("completions")


def test_unknown_channel_rejected() -> None:
    limiter = RateLimiter.from_config(RateLimitConfig())
    assert sorted(limiter.channels()) == ["completions", "search"]
    with pytest.raises(KeyError):
        limiter.try_acquire("embeddings")


def test_blocking_acquire_for_thread_callers() -> None:
    clock = FakeClock()
    bucket = TokenBucket(
        "search", BucketConfig(capacity=1, tokens_per_interval=1, interval_ms=500), clock=clock
    )
    sleeps: list[float] = []

    def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)
        clock.advance(seconds)

    bucket.acquire_sync(fake_sleep)
    bucket.acquire_sync(fake_sleep)

    assert sleeps == [0.5]
    assert bucket.tokens == 0
