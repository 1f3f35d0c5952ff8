"""Location matching, label resolution and zone listing endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

router = APIRouter(prefix="/api/v1")


@router.get("/locations/match")
async def match_location(
    lat: float = Query(ge=-90, le=90),
    lon: float = Query(ge=-180, le=180),
) -> JSONResponse:
    """Home base / zone at a coordinate, for arrival and departure alerts."""
    from fleettrack.main import get_timeline_service

    match = get_timeline_service().find_location_match(lat, lon)
    return JSONResponse(content={"match": match.to_dict() if match else None})


@router.get("/locations/resolve")
async def resolve_location(
    lat: float = Query(ge=-90, le=90),
    lon: float = Query(ge=-180, le=180),
    state: str | None = Query(default=None),
) -> JSONResponse:
    """Run the full resolution cascade for one coordinate."""
    from fleettrack.main import get_resolver

    try:
        location = await get_resolver().resolve(lat, lon, state)
    except ValueError as exc:
        return JSONResponse(status_code=422, content={"error": str(exc)})
    return JSONResponse(content={"lat": lat, "lon": lon, "location": location.to_dict()})


@router.get("/zones")
async def list_zones() -> JSONResponse:
    from fleettrack.main import get_zones

    zones = get_zones()
    return JSONResponse(content={
        "home_base": zones.home_base.to_dict() if zones.home_base else None,
        "zones": [z.to_dict() for z in zones.zones],
        "total": len(zones.zones),
    })


@router.post("/zones/reload")
async def reload_zone_table() -> JSONResponse:
    """Re-read the zone configuration (seed list if unavailable)."""
    from fleettrack.main import reload_zones

    count = await reload_zones()
    return JSONResponse(content={"reloaded": count})
