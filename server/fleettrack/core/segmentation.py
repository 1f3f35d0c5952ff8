"""Movement segmentation — splits an ordered fix stream into trips and stops.

Two states, idle and in-trip:

- idle → in-trip on the first fix flagged as moving.
- in-trip → closed on a non-moving fix whose following fixes all stay within
  ``stationary_radius_m`` of it for at least ``min_stop_seconds``. A shorter
  halt (traffic light) keeps the trip open.
- an open trip with two or more fixes is closed at the end of the window.

Trips shorter than ``min_trip_distance_m`` are GPS jitter and are dropped.
Everything here is a pure function over an immutable fix tuple; endpoint
labels are attached by the caller.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, Sequence

import structlog

from fleettrack.core.geo import haversine_m, meters_to_miles, path_length_m
from fleettrack.core.models import (
    GpsFix,
    StopClassification,
    Stop,
    Trip,
    TripEndpoint,
    ZoneType,
)

log = structlog.get_logger()


@dataclass(frozen=True)
class SegmentationParams:
    stationary_radius_m: float = 100.0
    min_stop_seconds: float = 90.0
    min_trip_distance_m: float = 50.0
    # Stops must last strictly longer than this to be reported.
    min_meaningful_stop_seconds: float = 90.0
    # Drop home-base stops that sit between two trips (quick depot stop-ins).
    suppress_midday_home_base_stops: bool = True


@dataclass(frozen=True)
class TripSegment:
    """The fixes of one trip, before labeling."""
    fixes: tuple[GpsFix, ...]
    distance_m: float

    @property
    def first(self) -> GpsFix:
        return self.fixes[0]

    @property
    def last(self) -> GpsFix:
        return self.fixes[-1]


def _ms(ts: datetime) -> int:
    return int(ts.timestamp() * 1000)


def _confirmed_stop_end(fixes: Sequence[GpsFix], i: int, params: SegmentationParams) -> int | None:
    """Index of the fix proving the halt at ``i`` is a real stop, else None."""
    anchor = fixes[i]
    for j in range(i + 1, len(fixes)):
        fix = fixes[j]
        if haversine_m(anchor.latitude, anchor.longitude, fix.latitude, fix.longitude) > params.stationary_radius_m:
            return None
        if (fix.timestamp - anchor.timestamp).total_seconds() >= params.min_stop_seconds:
            return j
    return None


def iter_trip_spans(fixes: Sequence[GpsFix], params: SegmentationParams) -> Iterator[tuple[int, int]]:
    """Yield inclusive (start, end) index pairs of candidate trips."""
    n = len(fixes)
    start: int | None = None
    i = 0
    while i < n:
        fix = fixes[i]
        if start is None:
            if fix.moving:
                start = i
            i += 1
            continue

        if not fix.moving:
            resume = _confirmed_stop_end(fixes, i, params)
            if resume is not None:
                yield start, i
                start = None
                # Skip the stationary fixes consumed by the confirmation scan.
                i = resume
                continue
        i += 1

    if start is not None and n - start >= 2:
        yield start, n - 1


def segment_trips(fixes: Sequence[GpsFix], params: SegmentationParams | None = None) -> list[TripSegment]:
    """Split fixes into trip segments, dropping jitter-length trips."""
    params = params or SegmentationParams()
    ordered = tuple(sorted(fixes, key=lambda f: f.timestamp))
    segments: list[TripSegment] = []
    for start, end in iter_trip_spans(ordered, params):
        trip_fixes = ordered[start:end + 1]
        distance = path_length_m([(f.latitude, f.longitude) for f in trip_fixes])
        if distance < params.min_trip_distance_m:
            log.debug("trip_discarded_short", start=trip_fixes[0].timestamp.isoformat(),
                      distance_m=round(distance, 1))
            continue
        if trip_fixes[-1].timestamp <= trip_fixes[0].timestamp:
            continue
        segments.append(TripSegment(trip_fixes, distance))
    return segments


def build_trip(segment: TripSegment, start: TripEndpoint, end: TripEndpoint) -> Trip:
    """Compute trip metrics; distances in miles, speeds in mph."""
    first, last = segment.first, segment.last
    duration_min = (last.timestamp - first.timestamp).total_seconds() / 60
    miles = meters_to_miles(segment.distance_m)

    battery_used = 0.0
    if first.battery_level is not None and last.battery_level is not None:
        battery_used = first.battery_level - last.battery_level

    speeds = [f.speed for f in segment.fixes if f.speed is not None and f.speed > 0]
    avg_speed = miles / (duration_min / 60) if duration_min > 0 else 0.0

    return Trip(
        id=f"trip_{first.vehicle_id}_{_ms(first.timestamp)}",
        vehicle_id=first.vehicle_id,
        start_time=first.timestamp,
        end_time=last.timestamp,
        start_location=start,
        end_location=end,
        distance_miles=round(miles, 2),
        duration_minutes=round(duration_min, 1),
        battery_used_pct=round(battery_used, 1),
        avg_speed=round(avg_speed, 1),
        max_speed=round(max(speeds), 1) if speeds else 0.0,
        route=segment.fixes,
    )


def apply_continuity(trips: Sequence[Trip]) -> list[Trip]:
    """Each trip starts exactly where the previous one ended.

    The inherited endpoint keeps the trip's own starting battery level.
    """
    result: list[Trip] = []
    for trip in trips:
        if result:
            prev_end = result[-1].end_location
            start = dataclasses.replace(prev_end, battery_level=trip.start_location.battery_level)
            trip = dataclasses.replace(trip, start_location=start)
        result.append(trip)
    return result


def classify_stop(location: TripEndpoint) -> StopClassification:
    zone_type = location.location.zone_type
    if zone_type == ZoneType.CLIENT:
        return StopClassification.CLIENT_VISIT
    if zone_type in (ZoneType.HOME_BASE, ZoneType.SUPPLIER):
        return StopClassification.SERVICE_STOP
    return StopClassification.UNKNOWN_STOP


def generate_stops(
    trips: Sequence[Trip],
    last_fix: GpsFix | None,
    now: datetime,
    params: SegmentationParams | None = None,
) -> list[Stop]:
    """Stops between consecutive trips, plus a trailing stop if still parked.

    ``now`` closes the trailing stop; callers clip it to the query window.
    """
    params = params or SegmentationParams()
    stops: list[Stop] = []

    for i, trip in enumerate(trips):
        next_trip = trips[i + 1] if i + 1 < len(trips) else None
        start = trip.end_time
        location = trip.end_location

        if next_trip is not None:
            end = next_trip.start_time
            ongoing = False
        elif last_fix is not None and not last_fix.moving:
            end = now
            ongoing = True
        else:
            continue

        seconds = (end - start).total_seconds()
        if seconds <= params.min_meaningful_stop_seconds:
            continue

        classification = classify_stop(location)
        if (
            params.suppress_midday_home_base_stops
            and next_trip is not None
            and location.location.zone_type == ZoneType.HOME_BASE
        ):
            log.debug("home_base_stop_suppressed", vehicle=trip.vehicle_id,
                      start=start.isoformat(), minutes=round(seconds / 60, 1))
            continue

        stops.append(Stop(
            id=f"stop_{trip.vehicle_id}_{_ms(start)}",
            vehicle_id=trip.vehicle_id,
            start_time=start,
            end_time=end,
            location=location,
            duration_minutes=round(seconds / 60, 1),
            classification=classification,
            ongoing=ongoing,
        ))

    stops.sort(key=lambda s: s.start_time)
    return stops
