"""Timeline service — trips, stops and a summary for one vehicle and window.

This is the core business logic exposed to reporting and alerting. It
depends on the FixStore port and an injected resolver, not on concrete
implementations.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING, Callable

import structlog

from fleettrack.core.geo import meters_to_miles, path_length_m
from fleettrack.core.models import (
    MOVING,
    PARKED,
    GpsFix,
    LocationMatch,
    LocationSource,
    ResolvedLocation,
    StopClassification,
    Stop,
    Timeline,
    TimelineSummary,
    Trip,
    TripEndpoint,
)
from fleettrack.core.resolver import format_coordinates
from fleettrack.core.segmentation import (
    SegmentationParams,
    apply_continuity,
    build_trip,
    generate_stops,
    segment_trips,
)
from fleettrack.core.timeutils import day_window, local_today, utc_now

if TYPE_CHECKING:
    from fleettrack.core.resolver import GeofenceResolver
    from fleettrack.core.stats import ResolutionStats
    from fleettrack.core.zones import ZoneTable
    from fleettrack.storage.base import FixStore

log = structlog.get_logger()


def summarize(fixes: list[GpsFix], trips: list[Trip], stops: list[Stop]) -> TimelineSummary:
    """Aggregate a window; all zeros when there are no fixes."""
    if not fixes:
        return TimelineSummary()

    first, last = fixes[0], fixes[-1]
    total_m = path_length_m([(f.latitude, f.longitude) for f in fixes])
    total_min = (last.timestamp - first.timestamp).total_seconds() / 60
    moving_min = sum(t.duration_minutes for t in trips)
    stopped_min = sum(s.duration_minutes for s in stops)
    trip_miles = sum(t.distance_miles for t in trips)

    battery_used = 0.0
    if first.battery_level is not None and last.battery_level is not None:
        battery_used = first.battery_level - last.battery_level

    speeds = [f.speed for f in fixes if f.speed is not None and f.speed > 0]

    return TimelineSummary(
        total_distance=round(meters_to_miles(total_m), 2),
        total_duration=round(total_min, 1),
        moving_time=round(moving_min, 1),
        stopped_time=round(stopped_min, 1),
        battery_used=round(battery_used, 1),
        client_visit_count=sum(1 for s in stops if s.classification == StopClassification.CLIENT_VISIT),
        avg_speed=round(trip_miles / (moving_min / 60), 1) if moving_min > 0 else 0.0,
        max_speed=round(max(speeds), 1) if speeds else 0.0,
        total_trips=len(trips),
    )


class TimelineService:
    """Builds timelines from stored fixes; labels endpoints via the resolver."""

    def __init__(
        self,
        fixes: FixStore,
        resolver: GeofenceResolver,
        zones: ZoneTable,
        params: SegmentationParams | None = None,
        stats: ResolutionStats | None = None,
        tz_name: str = "America/Chicago",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._fixes = fixes
        self._resolver = resolver
        self._zones = zones
        self._params = params or SegmentationParams()
        self._stats = stats
        self._tz_name = tz_name
        self._clock = clock

    async def _endpoint(self, fix: GpsFix, vehicle_state: str) -> TripEndpoint:
        try:
            location = await self._resolver.resolve(fix.latitude, fix.longitude, vehicle_state)
        except ValueError:
            log.warning("endpoint_unresolvable", vehicle=fix.vehicle_id,
                        lat=fix.latitude, lon=fix.longitude)
            location = ResolvedLocation(format_coordinates(fix.latitude, fix.longitude),
                                        LocationSource.COORDINATES)
        return TripEndpoint(fix.latitude, fix.longitude, location, fix.battery_level)

    async def _load_fixes(self, vehicle_id: str, start: datetime, end: datetime) -> list[GpsFix]:
        try:
            return await self._fixes.fetch(vehicle_id, start, end)
        except OSError:
            log.error("fix_source_unavailable", vehicle=vehicle_id, exc_info=True)
            return []

    async def get_timeline(self, vehicle_id: str, start: datetime, end: datetime) -> Timeline:
        """Trips, stops and summary for fixes in [start, end)."""
        fixes = await self._load_fixes(vehicle_id, start, end)
        log.info("timeline_requested", vehicle=vehicle_id, start=start.isoformat(),
                 end=end.isoformat(), fixes=len(fixes))
        if not fixes:
            return Timeline(vehicle_id=vehicle_id, start=start, end=end)

        segments = segment_trips(fixes, self._params)
        trips: list[Trip] = []
        for i, segment in enumerate(segments):
            # Later trips inherit the previous end as their start; skip the lookup.
            if i == 0:
                start_ep = await self._endpoint(segment.first, MOVING if segment.first.moving else PARKED)
            else:
                start_ep = TripEndpoint(segment.first.latitude, segment.first.longitude,
                                        trips[-1].end_location.location, segment.first.battery_level)
            end_ep = await self._endpoint(segment.last, PARKED)
            trip = build_trip(segment, start_ep, end_ep)
            trips.append(trip)
            log.debug("trip_closed", vehicle=vehicle_id, start=trip.start_time.isoformat(),
                      origin=trip.start_location.address, destination=trip.end_location.address,
                      miles=trip.distance_miles, minutes=trip.duration_minutes)

        trips = apply_continuity(trips)
        now = min(self._clock(), end)
        stops = generate_stops(trips, fixes[-1], now, self._params)
        summary = summarize(fixes, trips, stops)

        if self._stats is not None:
            self._stats.record_timeline(len(trips), len(stops))
        log.info("timeline_built", vehicle=vehicle_id, trips=len(trips), stops=len(stops),
                 miles=summary.total_distance)
        return Timeline(vehicle_id=vehicle_id, start=start, end=end,
                        trips=trips, stops=stops, summary=summary)

    async def get_day_timeline(self, vehicle_id: str, day: date | None = None) -> Timeline:
        """Timeline for one local calendar day (today by default)."""
        day = day or local_today(self._tz_name, self._clock())
        start, end = day_window(day, self._tz_name)
        return await self.get_timeline(vehicle_id, start, end)

    def find_location_match(self, lat: float, lon: float) -> LocationMatch | None:
        """Home base or zone at this coordinate, or None."""
        return self._zones.find_location_match(lat, lon)
