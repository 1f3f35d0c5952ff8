"""GPS fix ingestion endpoint.

This is the thin FastAPI adapter. It parses JSON bodies into GpsFix models
and hands them to the fix store.
"""

from __future__ import annotations

import json

from fastapi import APIRouter, Request, Response

from fleettrack.core.models import GpsFix
from fleettrack.core.timeutils import parse_timestamp

router = APIRouter(prefix="/api/v1")


def _opt_float(value) -> float | None:
    return None if value is None else float(value)


def _flag(value) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValueError(f"moving must be a JSON boolean, got {value!r}")
    return value


def _parse_json_fix(data: dict, default_vehicle: str = "") -> GpsFix:
    """Parse one fix. Raises KeyError/ValueError/TypeError on bad input."""
    lat = float(data.get("latitude", data.get("lat")))
    lon = float(data.get("longitude", data.get("lon", data.get("lng"))))
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
        raise ValueError(f"coordinate out of range ({lat}, {lon})")
    vehicle_id = str(data.get("vehicle_id") or default_vehicle)
    if not vehicle_id:
        raise ValueError("vehicle_id is required")
    return GpsFix(
        vehicle_id=vehicle_id,
        latitude=lat,
        longitude=lon,
        timestamp=parse_timestamp(data["timestamp"]),
        speed=_opt_float(data.get("speed")),
        battery_level=_opt_float(data.get("battery_level")),
        ignition_state=data.get("ignition_state"),
        moving=_flag(data.get("moving", data.get("is_moving"))),
    )


def _json(content: dict, status_code: int = 200) -> Response:
    return Response(content=json.dumps(content), status_code=status_code,
                    media_type="application/json")


@router.post("/fixes")
async def receive_fixes(request: Request) -> Response:
    """Receive fixes from the ingestion collaborator.

    Body: {"vehicle_id": "...", "fix": {...}} or {"vehicle_id": "...", "fixes": [...]}.
    A per-fix ``vehicle_id`` overrides the top-level one.
    """
    from fleettrack.main import get_fix_store, get_stats

    try:
        body = json.loads(await request.body())
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _json({"accepted": False, "error": "invalid JSON", "fixes_stored": 0}, 400)
    if not isinstance(body, dict):
        return _json({"accepted": False, "error": "body must be an object", "fixes_stored": 0}, 400)

    raw_fixes = []
    if "fix" in body:
        raw_fixes = [body["fix"]]
    elif "fixes" in body:
        raw_fixes = body["fixes"] or []
    if not isinstance(raw_fixes, list):
        return _json({"accepted": False, "error": "fixes must be a list", "fixes_stored": 0}, 422)

    default_vehicle = str(body.get("vehicle_id", "") or "")
    try:
        fixes = [_parse_json_fix(f, default_vehicle) for f in raw_fixes]
    except (KeyError, ValueError, TypeError, AttributeError) as exc:
        get_stats().record_fixes(0, rejected=len(raw_fixes))
        return _json({"accepted": False, "error": f"invalid fix: {exc}", "fixes_stored": 0}, 422)

    if fixes:
        await get_fix_store().store_batch(fixes)
        get_stats().record_fixes(len(fixes))
    return _json({"accepted": True, "error": "", "fixes_stored": len(fixes)})
