"""Time parsing and day-window helpers."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str | int | float | datetime, tz_name: str = "UTC") -> datetime:
    """Parse an ISO string, epoch milliseconds or datetime to an aware datetime.

    Naive values are assumed to be in ``tz_name``.

    Raises:
        ValueError: If the value cannot be parsed.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, bool):
        raise ValueError(f"invalid timestamp {value!r}")
    elif isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    else:
        raise ValueError(f"invalid timestamp {value!r}")

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=ZoneInfo(tz_name))
    return dt


def day_window(day: date, tz_name: str) -> tuple[datetime, datetime]:
    """[start, end) of a local calendar day."""
    tz = ZoneInfo(tz_name)
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start, end


def local_today(tz_name: str, now: datetime | None = None) -> date:
    return (now or utc_now()).astimezone(ZoneInfo(tz_name)).date()
