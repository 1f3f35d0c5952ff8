"""Zone configuration file (YAML; JSON is accepted too).

Schema (version 1):

    version: 1
    zones:
      - name: McRay Shop
        type: home_base
        address: 3510 McRay Ave, Springdale, AR
        lat: 36.183115
        lon: -94.169488
        radius_m: 200

``lat``/``lon`` may be omitted when ``address`` is set; ``radius_m`` may be
omitted and is then derived from the zone name.

Legacy coordinate caches shaped ``{address: {lat, lng, clientName, radius}}``
are migrated on load (inactive entries dropped, all typed as clients).
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
import yaml

from fleettrack.core.models import ZoneType
from fleettrack.core.zones import ZoneRecord

log = structlog.get_logger()

SCHEMA_VERSION = 1


def _opt_float(value: Any) -> float | None:
    return None if value is None or value == "" else float(value)


def _zone_from_dict(data: dict) -> ZoneRecord:
    try:
        return ZoneRecord(
            name=str(data["name"]),
            address=str(data.get("address", "") or ""),
            lat=_opt_float(data.get("lat")),
            lon=_opt_float(data.get("lon", data.get("lng"))),
            radius_m=_opt_float(data.get("radius_m", data.get("radius"))),
            type=ZoneType(data.get("type", ZoneType.CLIENT.value)),
        )
    except (KeyError, TypeError) as exc:
        raise ValueError(f"bad zone entry {data!r}") from exc


def migrate_zone_document(raw: Any) -> dict:
    """Return a version-1 zone document for any known shape."""
    if raw is None:
        return {"version": SCHEMA_VERSION, "zones": []}
    if isinstance(raw, list):
        return {"version": SCHEMA_VERSION, "zones": raw}
    if not isinstance(raw, dict):
        raise ValueError(f"zone file must be a mapping or list, got {type(raw).__name__}")

    version = raw.get("version")
    if version == SCHEMA_VERSION:
        return raw
    if version is not None:
        raise ValueError(f"unsupported zone schema version {version!r}")

    zones = []
    for address, entry in raw.items():
        if not isinstance(entry, dict):
            raise ValueError(f"bad legacy zone entry for {address!r}")
        if entry.get("isActive") is False or entry.get("isClient") is False:
            continue
        zones.append({
            "name": entry.get("clientName") or address,
            "address": address,
            "lat": entry.get("lat"),
            "lon": entry.get("lng"),
            "radius_m": entry.get("radius"),
            "type": ZoneType.CLIENT.value,
        })
    log.info("zones_migrated", count=len(zones))
    return {"version": SCHEMA_VERSION, "zones": zones}


class YamlZoneFile:
    """ZoneSource reading a YAML (or JSON) zone file."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def load(self) -> list[ZoneRecord]:
        if not self._path.exists():
            log.warning("zone_file_missing", path=str(self._path))
            return []
        with open(self._path) as f:
            try:
                raw = yaml.safe_load(f)
            except yaml.YAMLError as exc:
                raise ValueError(f"cannot parse {self._path}") from exc
        doc = migrate_zone_document(raw)
        return [_zone_from_dict(z) for z in doc.get("zones") or []]
