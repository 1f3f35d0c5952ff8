"""Timeline endpoints: trips, stops and a summary per vehicle."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from fleettrack.core.timeutils import day_window, parse_timestamp

router = APIRouter(prefix="/api/v1")


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"success": False, "error": message})


@router.get("/timeline/{vehicle_id}")
async def get_day_timeline(
    vehicle_id: str,
    date_: str | None = Query(default=None, alias="date"),
    include_route: bool = Query(default=False),
) -> JSONResponse:
    """Today's timeline in the operating timezone, or ``?date=YYYY-MM-DD``."""
    from fleettrack.main import get_timeline_service

    day = None
    if date_:
        try:
            day = date.fromisoformat(date_)
        except ValueError:
            return _bad_request("Invalid date format. Use YYYY-MM-DD format.")

    timeline = await get_timeline_service().get_day_timeline(vehicle_id, day)
    return JSONResponse(content={"success": True, "timeline": timeline.to_dict(include_route)})


@router.get("/timeline/{vehicle_id}/{start}/{end}")
async def get_period_timeline(
    vehicle_id: str,
    start: str,
    end: str,
    include_route: bool = Query(default=False),
) -> JSONResponse:
    """Timeline for [start, end). Dates (YYYY-MM-DD) cover whole local days."""
    from fleettrack.main import get_config, get_timeline_service

    tz_name = get_config().server.timezone
    try:
        if len(start) == 10 and len(end) == 10:
            start_dt, _ = day_window(date.fromisoformat(start), tz_name)
            _, end_dt = day_window(date.fromisoformat(end), tz_name)
        else:
            start_dt = parse_timestamp(start, tz_name)
            end_dt = parse_timestamp(end, tz_name)
    except ValueError:
        return _bad_request("Invalid date format. Use YYYY-MM-DD or ISO 8601.")
    if end_dt <= start_dt:
        return _bad_request("end must be after start")

    timeline = await get_timeline_service().get_timeline(vehicle_id, start_dt, end_dt)
    return JSONResponse(content={
        "success": True,
        "timeline": timeline.to_dict(include_route),
        "period": {"start": start_dt.isoformat(), "end": end_dt.isoformat()},
    })
