"""Storage interfaces (ports) for fixes, cached labels and zone configuration."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from fleettrack.core.location_cache import CacheRecord
    from fleettrack.core.models import GpsFix
    from fleettrack.core.zones import ZoneRecord


class FixStore(Protocol):
    """Port: persists GPS fixes and returns them per vehicle and window."""

    async def store(self, fix: GpsFix) -> None: ...

    async def store_batch(self, fixes: list[GpsFix]) -> None: ...

    async def fetch(self, vehicle_id: str, start: datetime, end: datetime) -> list[GpsFix]: ...


class LabelStore(Protocol):
    """Port: durable coordinate → label snapshot (whole-snapshot replace)."""

    def load(self) -> dict[str, CacheRecord]: ...

    def save(self, records: dict[str, CacheRecord]) -> None: ...


class ZoneSource(Protocol):
    """Port: configured geofence zones."""

    def load(self) -> list[ZoneRecord]: ...
