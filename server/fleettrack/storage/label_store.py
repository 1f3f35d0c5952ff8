"""File-based durable label cache.

On-disk schema (version 1):

    {
      "version": 1,
      "entries": {
        "36.1831,-94.1695": {"label": "McRay Shop", "source": "home_base",
                             "updated_at": "2025-05-01T14:02:11+00:00",
                             "zone_type": "home_base"}
      }
    }

Older snapshots are migrated on load:

- ``{"reverseCache": [[key, label], ...], "forwardCache": [...]}``
- a flat ``{key: label}`` mapping

Labels from legacy snapshots carry no provenance, so they are tagged as
free-geocode records (evictable, re-discoverable). Entries written
before ``zone_type`` was recorded load with no zone type.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import structlog

from fleettrack.core.location_cache import CacheFormatError, CacheRecord
from fleettrack.core.models import LocationSource, ZoneType

log = structlog.get_logger()

SCHEMA_VERSION = 1


def migrate_snapshot(raw: Any) -> dict:
    """Return a version-1 document for any known snapshot shape."""
    if not isinstance(raw, dict):
        raise CacheFormatError(f"cache snapshot must be an object, got {type(raw).__name__}")

    version = raw.get("version")
    if version == SCHEMA_VERSION:
        return raw
    if version is not None:
        raise CacheFormatError(f"unsupported cache schema version {version!r}")

    legacy_source = LocationSource.FREE_GEOCODE.value
    entries: dict[str, dict] = {}
    if "reverseCache" in raw:
        pairs = raw.get("reverseCache") or []
        for pair in pairs:
            if not isinstance(pair, (list, tuple)) or len(pair) != 2:
                raise CacheFormatError(f"bad reverseCache entry {pair!r}")
            key, label = pair
            entries[str(key)] = {"label": str(label), "source": legacy_source, "updated_at": ""}
    else:
        for key, label in raw.items():
            if not isinstance(label, str):
                raise CacheFormatError(f"bad legacy cache entry for {key!r}")
            entries[str(key)] = {"label": label, "source": legacy_source, "updated_at": ""}

    return {"version": SCHEMA_VERSION, "entries": entries}


def _record_from_dict(key: str, data: dict) -> CacheRecord:
    try:
        zone_type = data.get("zone_type")
        return CacheRecord(
            label=str(data["label"]),
            source=LocationSource(data["source"]),
            updated_at=str(data.get("updated_at", "")),
            zone_type=ZoneType(zone_type) if zone_type else None,
        )
    except (KeyError, ValueError, TypeError) as exc:
        raise CacheFormatError(f"bad cache entry for {key!r}") from exc


class FileLabelStore:
    """LabelStore persisted as a single JSON snapshot, replaced atomically."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, CacheRecord]:
        if not self._path.exists():
            return {}
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as exc:
            raise CacheFormatError(f"cannot read {self._path}") from exc

        doc = migrate_snapshot(raw)
        records = {key: _record_from_dict(key, data) for key, data in doc["entries"].items()}
        if raw.get("version") != SCHEMA_VERSION:
            log.info("cache_migrated", path=str(self._path), entries=len(records))
            self.save(records)
        return records

    def save(self, records: dict[str, CacheRecord]) -> None:
        doc = {
            "version": SCHEMA_VERSION,
            "entries": {
                key: {"label": r.label, "source": r.source.value, "updated_at": r.updated_at,
                      "zone_type": r.zone_type.value if r.zone_type else None}
                for key, r in sorted(records.items())
            },
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_name(self._path.name + ".tmp")
        tmp.write_text(json.dumps(doc, indent=2), encoding="utf-8")
        os.replace(tmp, self._path)
        log.debug("cache_saved", path=str(self._path), entries=len(records))
