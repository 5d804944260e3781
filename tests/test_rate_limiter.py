"""Tests for the sliding-window rate limiter."""

from __future__ import annotations

import asyncio
import time

import pytest

from mailflow.core.rate_limiter import HOUR_MS, MINUTE_MS, RateLimiter


class FakeClock:
    """Manually advanced millisecond clock paired with a recording sleep."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds * 1000


def test_third_call_waits_for_window_to_slide() -> None:
    limiter = RateLimiter(max_requests=2, window_ms=1000)

    async def scenario() -> list[float]:
        started = time.monotonic()
        completions = []
        for _ in range(3):
            await limiter.acquire()
            completions.append(time.monotonic())
        return [started, *completions]

    started, first, second, third = asyncio.run(scenario())

    assert second - started < 0.5
    assert third >= started + 1.0
    assert third - first >= 0.99


def test_window_never_admits_more_than_limit() -> None:
    clock = FakeClock()
    limiter = RateLimiter(3, 1000, clock=clock, sleep=clock.sleep)
    admitted: list[float] = []

    async def scenario() -> None:
        for _ in range(10):
            await limiter.acquire()
            admitted.append(clock.now)
            clock.now += 50

    asyncio.run(scenario())

    for index, instant in enumerate(admitted):
        in_window = [t for t in admitted[: index + 1] if t > instant - 1000]
        assert len(in_window) <= 3


def test_wait_is_measured_from_oldest_admission() -> None:
    clock = FakeClock()
    limiter = RateLimiter(2, 1000, clock=clock, sleep=clock.sleep)

    async def scenario() -> None:
        await limiter.acquire()
        clock.now = 300
        await limiter.acquire()
        clock.now = 400
        await limiter.acquire()

    asyncio.run(scenario())

    assert clock.sleeps == [pytest.approx(0.6)]
    assert clock.now == pytest.approx(1000)


def test_remaining_requests_prunes_expired_entries() -> None:
    clock = FakeClock()
    limiter = RateLimiter(2, 1000, clock=clock, sleep=clock.sleep)

    async def scenario() -> list[int]:
        counts = [await limiter.remaining_requests()]
        await limiter.acquire()
        await limiter.acquire()
        counts.append(await limiter.remaining_requests())
        clock.now = 1000
        counts.append(await limiter.remaining_requests())
        return counts

    assert asyncio.run(scenario()) == [2, 0, 2]


def test_reset_clears_history() -> None:
    clock = FakeClock()
    limiter = RateLimiter(1, 60_000, clock=clock, sleep=clock.sleep)

    async def scenario() -> None:
        await limiter.acquire()
        await limiter.reset()
        await limiter.acquire()

    asyncio.run(scenario())

    assert clock.sleeps == []


def test_concurrent_callers_are_all_admitted_within_limit() -> None:
    limiter = RateLimiter(2, 200)
    admitted: list[float] = []

    async def worker() -> None:
        await limiter.acquire()
        admitted.append(time.monotonic())

    async def scenario() -> None:
        await asyncio.gather(*(worker() for _ in range(5)))

    asyncio.run(scenario())

    admitted.sort()
    assert len(admitted) == 5
    for index in range(2, 5):
        assert admitted[index] - admitted[index - 2] >= 0.19


def test_presets_use_minute_and_hour_windows() -> None:
    assert RateLimiter.per_minute(15).window_ms == MINUTE_MS
    assert RateLimiter.per_minute(15).max_requests == 15
    assert RateLimiter.per_hour(100).window_ms == HOUR_MS


def test_invalid_configuration_rejected() -> None:
    with pytest.raises(ValueError):
        RateLimiter(0, 1000)
    with pytest.raises(ValueError):
        RateLimiter(1, 0)
