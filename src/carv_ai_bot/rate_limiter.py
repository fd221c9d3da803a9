from __future__ import annotations

import asyncio
import logging
import time
from contextlib import suppress
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitStats:
    active_users: int
    total_requests: int


class RateLimiter:
    """Per-user sliding-window request counter.

    Expired timestamps are dropped lazily on every read. The periodic sweep
    started by ``start()`` only reclaims entries of users that went quiet.
    """

    def __init__(self, *, limit: int, window_ms: int) -> None:
        if limit < 0:
            raise ValueError("Rate limit must not be negative.")
        if window_ms <= 0:
            raise ValueError("Rate limit window must be positive.")

        self._limit = limit
        self._window_ms = window_ms
        self._requests: dict[str, list[int]] = {}
        self._sweep_task: asyncio.Task[None] | None = None

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def window_ms(self) -> int:
        return self._window_ms

    def is_rate_limited(self, user_id: str) -> bool:
        valid = self._prune(user_id, _now_ms())
        if len(valid) >= self._limit:
            logger.warning(
                "user_rate_limited user_id=%s requests=%d limit=%d",
                user_id,
                len(valid),
                self._limit,
            )
            return True
        return False

    def record_request(self, user_id: str) -> None:
        requests = self._requests.setdefault(user_id, [])
        requests.append(_now_ms())
        logger.debug(
            "request_recorded user_id=%s total_requests=%d", user_id, len(requests)
        )

    def try_acquire(self, user_id: str) -> bool:
        if self.is_rate_limited(user_id):
            return False
        self.record_request(user_id)
        return True

    def get_remaining_requests(self, user_id: str) -> int:
        valid = self._prune(user_id, _now_ms())
        return max(0, self._limit - len(valid))

    def get_time_until_reset(self, user_id: str) -> int:
        now = _now_ms()
        valid = self._prune(user_id, now)
        if not valid:
            return 0
        return max(0, valid[0] + self._window_ms - now)

    def sweep(self) -> None:
        now = _now_ms()
        for user_id in list(self._requests):
            if not self._prune(user_id, now):
                del self._requests[user_id]

        logger.debug("rate_limiter_sweep active_users=%d", len(self._requests))

    def get_stats(self) -> RateLimitStats:
        return RateLimitStats(
            active_users=len(self._requests),
            total_requests=sum(len(items) for items in self._requests.values()),
        )

    def start(self) -> None:
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.get_running_loop().create_task(self._run_sweep())

    async def stop(self) -> None:
        task = self._sweep_task
        self._sweep_task = None
        if task is None:
            return

        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    @property
    def running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    async def _run_sweep(self) -> None:
        interval = self._window_ms / 1000
        while True:
            await asyncio.sleep(interval)
            try:
                self.sweep()
            except Exception:
                logger.exception("rate_limiter_sweep_failed")

    def _prune(self, user_id: str, now: int) -> list[int]:
        requests = self._requests.get(user_id)
        if not requests:
            return []

        valid = [stamp for stamp in requests if now - stamp < self._window_ms]
        self._requests[user_id] = valid
        return valid


def _now_ms() -> int:
    return int(time.monotonic() * 1000)
