"""End-to-end tests for timeline building."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from conftest import HOME, ROADSIDE, SHILOH, drive, local, make_fix, park
from fleettrack.core.models import LocationSource, StopClassification, ZoneType
from fleettrack.core.timeline import TimelineService, summarize
from fleettrack.main import get_fix_store, get_resolver, get_stats, get_timeline_service, get_zones

DAY = date(2025, 5, 1)


def client_day():
    return (
        drive(HOME, SHILOH, local(8, 0), 20, battery=90.0)
        + park(SHILOH, local(8, 20), 30, battery=88.0)
        + drive(SHILOH, HOME, local(8, 50), 20, battery=88.0)
        + [make_fix(*HOME, local(9, 10), moving=True, speed=5.0, battery=86.0)]
    )


@pytest.mark.asyncio
async def test_client_visit_day(geocoder):
    await get_fix_store().store_batch(client_day())

    timeline = await get_timeline_service().get_day_timeline("van-1", DAY)

    assert len(timeline.trips) == 2
    out, back = timeline.trips
    assert out.start_location.address == "McRay Shop"
    assert out.start_location.location.source == LocationSource.HOME_BASE
    assert out.end_location.client_name == "Shiloh Museum of Ozark History"
    assert back.start_location.same_place(out.end_location)
    assert back.start_location.battery_level == 88.0
    assert back.end_location.address == "McRay Shop"

    assert len(timeline.stops) == 1
    visit = timeline.stops[0]
    assert visit.classification == StopClassification.CLIENT_VISIT
    assert visit.duration_minutes == 30.0
    assert visit.start_time == local(8, 20)
    assert visit.end_time == local(8, 50)
    assert not visit.ongoing

    summary = timeline.summary
    assert summary.total_trips == 2
    assert summary.client_visit_count == 1
    assert summary.moving_time == 40.0
    assert summary.stopped_time == 30.0
    assert summary.total_duration == 70.0
    assert summary.battery_used == 4.0
    assert summary.max_speed == 25.0
    assert summary.total_distance > 4.0

    # Every endpoint is inside a zone; no external lookups were needed.
    assert geocoder.reverse_calls == []
    snap = get_stats().snapshot()
    assert snap["timelines_built"] == 1
    assert snap["trips_emitted"] == 2
    assert snap["stops_emitted"] == 1


@pytest.mark.asyncio
async def test_trailing_stop_runs_until_now():
    await get_fix_store().store_batch(
        drive(HOME, SHILOH, local(8, 0), 20) + park(SHILOH, local(8, 20), 41))

    timeline = await get_timeline_service().get_day_timeline("van-1", DAY)

    assert len(timeline.trips) == 1
    (stop,) = timeline.stops
    assert stop.ongoing
    # The test clock reads 18:00.
    assert stop.end_time == local(18, 0)
    assert stop.duration_minutes == 580.0


@pytest.mark.asyncio
async def test_trailing_stop_is_clipped_to_window_end():
    await get_fix_store().store_batch(
        drive(HOME, SHILOH, local(8, 0), 20) + park(SHILOH, local(8, 20), 41))
    service = TimelineService(get_fix_store(), get_resolver(), get_zones(),
                              clock=lambda: local(12, 0, day=3))

    timeline = await service.get_day_timeline("van-1", DAY)

    (stop,) = timeline.stops
    assert stop.end_time == local(0, 0, day=2)
    assert stop.duration_minutes == 940.0


@pytest.mark.asyncio
async def test_unknown_endpoint_uses_geocoder(geocoder):
    await get_fix_store().store_batch(
        drive(HOME, ROADSIDE, local(8, 0), 10) + park(ROADSIDE, local(8, 10), 20))

    timeline = await get_timeline_service().get_day_timeline("van-1", DAY)

    (trip,) = timeline.trips
    assert trip.end_location.address == geocoder.label
    assert trip.end_location.client_name is None
    assert timeline.stops[0].classification == StopClassification.UNKNOWN_STOP


@pytest.mark.asyncio
async def test_midday_depot_stop_is_hidden():
    await get_fix_store().store_batch(
        drive(SHILOH, HOME, local(8, 0), 20)
        + park(HOME, local(8, 20), 30)
        + drive(HOME, SHILOH, local(8, 50), 20)
        + [make_fix(*SHILOH, local(9, 10), moving=True)]
    )

    timeline = await get_timeline_service().get_day_timeline("van-1", DAY)

    assert len(timeline.trips) == 2
    assert timeline.stops == []
    assert timeline.trips[0].end_location.location.zone_type == ZoneType.HOME_BASE


@pytest.mark.asyncio
async def test_other_vehicles_and_days_are_ignored():
    await get_fix_store().store_batch(
        drive(HOME, SHILOH, local(8, 0), 20, vehicle="van-2")
        + drive(HOME, SHILOH, local(8, 0, day=2), 20))

    timeline = await get_timeline_service().get_day_timeline("van-1", DAY)
    assert timeline.trips == []
    assert timeline.summary.total_trips == 0


@pytest.mark.asyncio
async def test_empty_day():
    timeline = await get_timeline_service().get_day_timeline("van-1", DAY)
    assert timeline.trips == []
    assert timeline.stops == []
    assert timeline.summary.to_dict() == {
        "total_distance": 0.0, "total_duration": 0.0, "moving_time": 0.0,
        "stopped_time": 0.0, "battery_used": 0.0, "client_visit_count": 0,
        "avg_speed": 0.0, "max_speed": 0.0, "total_trips": 0,
    }


@pytest.mark.asyncio
async def test_fix_source_failure_yields_empty_timeline():
    class BrokenStore:
        async def fetch(self, vehicle_id, start, end):
            raise OSError("disk gone")

    service = TimelineService(BrokenStore(), get_resolver(), get_zones())
    timeline = await service.get_timeline("van-1", local(0, 0), local(0, 0, day=2))
    assert timeline.trips == []
    assert timeline.summary.total_trips == 0


@pytest.mark.asyncio
async def test_day_defaults_to_local_today():
    await get_fix_store().store_batch(client_day())
    timeline = await get_timeline_service().get_day_timeline("van-1")
    assert timeline.start == local(0, 0)
    assert len(timeline.trips) == 2


def test_find_location_match():
    service = get_timeline_service()
    assert service.find_location_match(*HOME).type == ZoneType.HOME_BASE
    assert service.find_location_match(*SHILOH).name == "Shiloh Museum of Ozark History"
    assert service.find_location_match(*ROADSIDE) is None


def test_summarize_no_fixes():
    assert summarize([], [], []).total_distance == 0.0


@pytest.mark.asyncio
async def test_round_trip_with_short_halts():
    def every_30s(at, start, count, moving):
        return [make_fix(at[0], at[1], start + timedelta(seconds=30 * k), moving=moving)
                for k in range(count)]

    # Leave the roadside, halt 120 s at the museum, come back and halt 120 s.
    fixes = (
        drive(ROADSIDE, SHILOH, local(8, 0), 10)
        + every_30s(SHILOH, local(8, 10), 5, moving=False)
        + drive(SHILOH, ROADSIDE, local(8, 12, 30), 10)
        + every_30s(ROADSIDE, local(8, 22, 30), 5, moving=False)
    )
    await get_fix_store().store_batch(fixes)
    service = TimelineService(get_fix_store(), get_resolver(), get_zones(),
                              clock=lambda: local(8, 24, 30))

    timeline = await service.get_day_timeline("van-1", DAY)

    assert len(timeline.trips) == 2
    assert timeline.trips[1].start_location.same_place(timeline.trips[0].end_location)
    at_museum = [s for s in timeline.stops if s.location.address == "Shiloh Museum of Ozark History"]
    assert len(at_museum) == 1
    assert at_museum[0].start_time == local(8, 10)
    assert at_museum[0].end_time == local(8, 12, 30)
    assert at_museum[0].classification == StopClassification.CLIENT_VISIT
