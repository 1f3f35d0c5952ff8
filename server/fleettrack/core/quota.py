"""Daily quota guard for paid place lookups.

A single in-memory counter that resets when the wall-clock date changes in
the operating timezone. The counter does not survive a restart and is not
shared between processes.
"""

from __future__ import annotations

import threading
from datetime import date, datetime, timezone
from typing import Callable
from zoneinfo import ZoneInfo

import structlog

log = structlog.get_logger()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DailyQuota:
    """Thread-safe per-day attempt counter."""

    def __init__(
        self,
        limit: int,
        tz_name: str = "America/Chicago",
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._lock = threading.Lock()
        self._limit = limit
        self._tz = ZoneInfo(tz_name)
        self._clock = clock
        self._day: date | None = None
        self._used = 0

    def _today(self) -> date:
        return self._clock().astimezone(self._tz).date()

    def _roll_over(self, today: date) -> None:
        """Reset the counter on a new local day. Caller holds lock."""
        if self._day != today:
            if self._day is not None:
                log.info("places_quota_reset", previous_day=self._day.isoformat(),
                         used=self._used, limit=self._limit)
            self._day = today
            self._used = 0

    def try_acquire(self) -> bool:
        """Consume one attempt. Returns False when today's quota is spent."""
        today = self._today()
        with self._lock:
            self._roll_over(today)
            if self._used >= self._limit:
                return False
            self._used += 1
            return True

    @property
    def used(self) -> int:
        today = self._today()
        with self._lock:
            self._roll_over(today)
            return self._used

    @property
    def remaining(self) -> int:
        return max(self._limit - self.used, 0)

    def snapshot(self) -> dict:
        today = self._today()
        with self._lock:
            self._roll_over(today)
            return {
                "date": today.isoformat(),
                "used": self._used,
                "limit": self._limit,
                "remaining": max(self._limit - self._used, 0),
            }
