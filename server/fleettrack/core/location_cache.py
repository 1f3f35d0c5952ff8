"""Location cache: coordinate-keyed label store.

Keys are rounded "lat,lon" strings. Two views are kept:

- ``_durable``: every record ever resolved; this is what gets persisted
  (whole-snapshot replace, last writer wins).
- ``_memory``: the lookup view. Free-geocode records can be evicted from it
  periodically so new businesses nearby get re-discovered; they stay in the
  durable snapshot.

Authoritative records (custom, home base, client, places) are flushed to the
store as soon as they are written.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog

from fleettrack.core.models import LocationSource, ResolvedLocation, ZoneType

if TYPE_CHECKING:
    from fleettrack.storage.base import LabelStore

log = structlog.get_logger()

DEFAULT_PRECISION = 4


class CacheFormatError(Exception):
    """A persisted cache snapshot could not be understood."""


def coord_key(lat: float, lon: float, precision: int = DEFAULT_PRECISION) -> str:
    """Stable cache key; precision 4 is roughly 11 m of latitude."""
    return f"{round(lat, precision):.{precision}f},{round(lon, precision):.{precision}f}"


@dataclass(frozen=True)
class CacheRecord:
    label: str
    source: LocationSource
    updated_at: str = ""
    zone_type: ZoneType | None = None

    def to_resolved(self) -> ResolvedLocation:
        return ResolvedLocation(label=self.label, source=self.source, zone_type=self.zone_type)


class LocationCache:
    """Injectable cache instance; construct once per process (or per test)."""

    def __init__(self, store: LabelStore | None = None, precision: int = DEFAULT_PRECISION) -> None:
        self._lock = threading.Lock()
        self._store = store
        self._precision = precision
        self._durable: dict[str, CacheRecord] = {}
        self._memory: dict[str, CacheRecord] = {}
        self._dirty = False
        self.hits = 0
        self.misses = 0

    def key(self, lat: float, lon: float) -> str:
        return coord_key(lat, lon, self._precision)

    def load(self) -> int:
        """Load the durable snapshot into memory. Returns the record count."""
        if self._store is None:
            return 0
        try:
            records = self._store.load()
        except CacheFormatError:
            log.error("cache_load_failed", exc_info=True)
            records = {}
        with self._lock:
            self._durable = dict(records)
            self._memory = dict(records)
            self._dirty = False
        log.info("cache_loaded", entries=len(records))
        return len(records)

    def get(self, lat: float, lon: float) -> CacheRecord | None:
        key = self.key(lat, lon)
        with self._lock:
            record = self._memory.get(key)
            if record is None:
                self.misses += 1
            else:
                self.hits += 1
            return record

    def put(self, lat: float, lon: float, location: ResolvedLocation) -> None:
        if location.source == LocationSource.COORDINATES:
            return
        record = CacheRecord(
            label=location.label,
            source=location.source,
            updated_at=datetime.now(timezone.utc).isoformat(),
            zone_type=location.zone_type,
        )
        key = self.key(lat, lon)
        with self._lock:
            previous = self._durable.get(key)
            self._memory[key] = record
            if previous is not None and previous.to_resolved() == location:
                return
            self._durable[key] = record
            self._dirty = True
            if location.source.authoritative:
                self._flush_locked()

    def flush(self) -> None:
        with self._lock:
            self._flush_locked()

    def _flush_locked(self) -> None:
        """Persist the durable view. Caller holds lock."""
        if self._store is None or not self._dirty:
            return
        try:
            self._store.save(dict(self._durable))
            self._dirty = False
        except OSError:
            log.error("cache_save_failed", entries=len(self._durable), exc_info=True)

    def evict_free_geocode(self) -> int:
        """Drop free-geocode records from the lookup view only."""
        with self._lock:
            stale = [k for k, r in self._memory.items() if r.source == LocationSource.FREE_GEOCODE]
            for key in stale:
                del self._memory[key]
        if stale:
            log.info("cache_evicted", source=LocationSource.FREE_GEOCODE.value, entries=len(stale))
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._memory)

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "memory_entries": len(self._memory),
                "durable_entries": len(self._durable),
                "hits": self.hits,
                "misses": self.misses,
            }
