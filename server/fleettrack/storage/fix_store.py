"""File-based GPS fix storage.

Stores fixes as JSON Lines, one file per vehicle per UTC day:

    base_dir/<vehicle_id>/YYYY/MM/DD/fixes.jsonl

Reads scan only the day files overlapping the requested window.
"""

from __future__ import annotations

import json
import re
from datetime import datetime, timedelta, timezone
from pathlib import Path

import structlog

from fleettrack.core.models import GpsFix
from fleettrack.core.timeutils import parse_timestamp

log = structlog.get_logger()

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


def fix_to_record(fix: GpsFix) -> dict:
    return {
        "v": fix.vehicle_id,
        "ts": fix.timestamp.astimezone(timezone.utc).isoformat(),
        "lat": fix.latitude,
        "lon": fix.longitude,
        "speed": fix.speed,
        "battery": fix.battery_level,
        "ignition": fix.ignition_state,
        "moving": fix.moving,
    }


def fix_from_record(data: dict) -> GpsFix:
    """Inverse of fix_to_record. Raises KeyError/ValueError/TypeError on bad input."""
    return GpsFix(
        vehicle_id=str(data["v"]),
        latitude=float(data["lat"]),
        longitude=float(data["lon"]),
        timestamp=parse_timestamp(data["ts"]),
        speed=data.get("speed"),
        battery_level=data.get("battery"),
        ignition_state=data.get("ignition"),
        moving=bool(data.get("moving", False)),
    )


class FileFixStore:
    """FixStore backed by vehicle/day partitioned JSONL files."""

    def __init__(self, base_dir: str | Path) -> None:
        self._base_dir = Path(base_dir)
        self._base_dir.mkdir(parents=True, exist_ok=True)

    def _day_dir(self, vehicle_id: str, day: datetime) -> Path:
        vehicle = _UNSAFE.sub("_", vehicle_id) or "_"
        return self._base_dir / vehicle / f"{day.year:04d}" / f"{day.month:02d}" / f"{day.day:02d}"

    async def store(self, fix: GpsFix) -> None:
        """Append a single fix to its day file."""
        day_dir = self._day_dir(fix.vehicle_id, fix.timestamp.astimezone(timezone.utc))
        day_dir.mkdir(parents=True, exist_ok=True)
        with open(day_dir / "fixes.jsonl", "a") as f:
            f.write(json.dumps(fix_to_record(fix), separators=(",", ":")) + "\n")

    async def store_batch(self, fixes: list[GpsFix]) -> None:
        for fix in fixes:
            await self.store(fix)
        log.debug("fixes_written", count=len(fixes))

    async def fetch(self, vehicle_id: str, start: datetime, end: datetime) -> list[GpsFix]:
        """Fixes for one vehicle with start <= timestamp < end, oldest first."""
        fixes: list[GpsFix] = []
        day = start.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
        last_day = end.astimezone(timezone.utc)
        while day <= last_day:
            path = self._day_dir(vehicle_id, day) / "fixes.jsonl"
            if path.exists():
                fixes.extend(self._read_day(path, vehicle_id, start, end))
            day += timedelta(days=1)
        fixes.sort(key=lambda f: f.timestamp)
        return fixes

    def _read_day(self, path: Path, vehicle_id: str, start: datetime, end: datetime) -> list[GpsFix]:
        fixes = []
        with open(path) as f:
            for lineno, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    fix = fix_from_record(json.loads(line))
                except (json.JSONDecodeError, KeyError, ValueError, TypeError):
                    log.warning("fix_record_malformed", path=str(path), line=lineno)
                    continue
                if fix.vehicle_id == vehicle_id and start <= fix.timestamp < end:
                    fixes.append(fix)
        return fixes
