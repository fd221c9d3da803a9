from __future__ import annotations

import asyncio

import pytest

from carv_ai_bot.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self) -> None:
        self.seconds = 100.0

    def __call__(self) -> float:
        return self.seconds

    def advance_ms(self, milliseconds: int) -> None:
        self.seconds += milliseconds / 1000


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    fake = FakeClock()
    monkeypatch.setattr("carv_ai_bot.rate_limiter.time.monotonic", fake)
    return fake


def test_limited_after_limit_requests_in_window(clock: FakeClock) -> None:
    limiter = RateLimiter(limit=3, window_ms=60000)

    for _ in range(2):
        limiter.record_request("u1")
        assert limiter.is_rate_limited("u1") is False

    limiter.record_request("u1")
    assert limiter.is_rate_limited("u1") is True


def test_two_requests_expire_after_window(clock: FakeClock) -> None:
    limiter = RateLimiter(limit=2, window_ms=1000)

    limiter.record_request("u1")
    limiter.record_request("u1")
    assert limiter.is_rate_limited("u1") is True

    clock.advance_ms(1001)
    assert limiter.is_rate_limited("u1") is False


def test_remaining_requests_decrease_to_zero(clock: FakeClock) -> None:
    limiter = RateLimiter(limit=3, window_ms=60000)
    seen = [limiter.get_remaining_requests("u1")]

    for _ in range(5):
        limiter.record_request("u1")
        seen.append(limiter.get_remaining_requests("u1"))

    assert seen == [3, 2, 1, 0, 0, 0]


def test_quota_restored_after_idle_window(clock: FakeClock) -> None:
    limiter = RateLimiter(limit=2, window_ms=5000)
    limiter.record_request("u1")
    limiter.record_request("u1")

    clock.advance_ms(5001)

    assert limiter.is_rate_limited("u1") is False
    assert limiter.get_remaining_requests("u1") == 2
    assert limiter.get_time_until_reset("u1") == 0


def test_zero_limit_always_limits(clock: FakeClock) -> None:
    limiter = RateLimiter(limit=0, window_ms=1000)

    assert limiter.is_rate_limited("new-user") is True
    assert limiter.try_acquire("new-user") is False


def test_time_until_reset_tracks_oldest_valid_request(clock: FakeClock) -> None:
    limiter = RateLimiter(limit=5, window_ms=10000)
    assert limiter.get_time_until_reset("u1") == 0

    limiter.record_request("u1")
    clock.advance_ms(4000)
    limiter.record_request("u1")

    assert limiter.get_time_until_reset("u1") == 6000

    clock.advance_ms(7000)
    assert limiter.get_time_until_reset("u1") == 3000


def test_try_acquire_records_only_when_allowed(clock: FakeClock) -> None:
    limiter = RateLimiter(limit=2, window_ms=1000)

    assert limiter.try_acquire("u1") is True
    assert limiter.try_acquire("u1") is True
    assert limiter.try_acquire("u1") is False
    assert limiter.get_stats().total_requests == 2


def test_users_are_tracked_independently(clock: FakeClock) -> None:
    limiter = RateLimiter(limit=1, window_ms=1000)

    limiter.record_request("u1")

    assert limiter.is_rate_limited("u1") is True
    assert limiter.is_rate_limited("u2") is False


def test_sweep_removes_inactive_users(clock: FakeClock) -> None:
    limiter = RateLimiter(limit=5, window_ms=1000)
    limiter.record_request("u1")
    clock.advance_ms(600)
    limiter.record_request("u2")
    assert limiter.get_stats().active_users == 2

    clock.advance_ms(500)
    limiter.sweep()

    stats = limiter.get_stats()
    assert stats.active_users == 1
    assert stats.total_requests == 1


def test_read_only_check_does_not_create_entry(clock: FakeClock) -> None:
    limiter = RateLimiter(limit=5, window_ms=1000)

    limiter.is_rate_limited("ghost")
    limiter.get_remaining_requests("ghost")

    assert limiter.get_stats().active_users == 0


@pytest.mark.parametrize(
    ("limit", "window_ms"),
    [(-1, 1000), (5, 0), (5, -10)],
)
def test_invalid_configuration_rejected(limit: int, window_ms: int) -> None:
    with pytest.raises(ValueError):
        RateLimiter(limit=limit, window_ms=window_ms)


@pytest.mark.anyio
async def test_periodic_sweep_runs_and_stops() -> None:
    limiter = RateLimiter(limit=5, window_ms=20)
    limiter.record_request("u1")

    limiter.start()
    assert limiter.running is True
    await asyncio.sleep(0.1)

    assert limiter.get_stats().active_users == 0

    await limiter.stop()
    assert limiter.running is False
    await limiter.stop()


@pytest.mark.anyio
async def test_periodic_sweep_survives_failed_pass(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    limiter = RateLimiter(limit=5, window_ms=20)
    limiter.record_request("u1")
    real_sweep = limiter.sweep
    calls = 0

    def flaky_sweep() -> None:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("boom")
        real_sweep()

    monkeypatch.setattr(limiter, "sweep", flaky_sweep)

    limiter.start()
    await asyncio.sleep(0.1)

    assert limiter.running is True
    assert calls >= 2
    assert limiter.get_stats().active_users == 0
    assert "rate_limiter_sweep_failed" in caplog.text

    await limiter.stop()
