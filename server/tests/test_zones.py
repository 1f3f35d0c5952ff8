"""Tests for the geofence zone table and zone loading."""

from __future__ import annotations

import pytest
from structlog.testing import capture_logs

from conftest import HOME, ROADSIDE, SHILOH, FakeGeocoder
from fleettrack.core.models import GeofenceZone, ZoneType
from fleettrack.core.stats import ResolutionStats
from fleettrack.core.zones import (
    SEED_ZONES,
    ZoneRecord,
    ZoneTable,
    build_zones,
    default_radius_for,
    load_zone_table,
)


def test_seed_table_has_home_base():
    table = ZoneTable()
    assert table.home_base.name == "McRay Shop"
    assert table.home_base.type == ZoneType.HOME_BASE
    assert len(table.zones) == len(SEED_ZONES)


def test_at_home_base():
    table = ZoneTable()
    match = table.at_home_base(*HOME)
    assert match is not None
    assert match.distance_m < 1
    assert table.at_home_base(*SHILOH) is None


def test_client_zone_match():
    table = ZoneTable()
    match = table.best_match(36.1874, -94.1313)
    assert match.zone.name == "Shiloh Museum of Ozark History"
    assert match.distance_m < 100


def test_no_match_on_open_road():
    table = ZoneTable()
    assert table.best_match(*ROADSIDE) is None
    assert table.find_location_match(*ROADSIDE) is None


def test_home_base_wins_over_nearer_overlapping_zone():
    zones = [
        GeofenceZone("Depot", 36.0, -94.0, 300.0, ZoneType.HOME_BASE),
        GeofenceZone("Next Door Client", 36.0010, -94.0, 300.0, ZoneType.CLIENT),
    ]
    table = ZoneTable(zones)
    # ~100 m from the client center, ~210 m from the depot center.
    match = table.best_match(36.0019, -94.0)
    assert match.zone.name == "Depot"


def test_nearest_zone_wins_without_home_base():
    zones = [
        GeofenceZone("Far Client", 36.0, -94.0, 300.0, ZoneType.CLIENT),
        GeofenceZone("Near Client", 36.0020, -94.0, 300.0, ZoneType.CLIENT),
    ]
    table = ZoneTable(zones)
    assert table.best_match(36.0015, -94.0).zone.name == "Near Client"


def test_large_property_radius_matches():
    zones = [GeofenceZone("Sunset Estates POA", 36.0, -94.0, 1000.0, ZoneType.CLIENT)]
    table = ZoneTable(zones)
    match = table.best_match(36.0080, -94.0)
    assert match is not None
    assert 850 < match.distance_m < 1000


def test_formula_mismatch_is_logged_and_counted():
    stats = ResolutionStats()
    zones = [GeofenceZone("Far Away", 38.0, -94.17, 100.0, ZoneType.CLIENT)]
    table = ZoneTable(zones, stats=stats)

    with capture_logs() as logs:
        assert table.best_match(36.18, -94.17) is None

    mismatches = [e for e in logs if e["event"] == "distance_formula_mismatch"]
    assert len(mismatches) == 1
    assert mismatches[0]["zone"] == "Far Away"
    assert mismatches[0]["diff_m"] > 100
    assert stats.snapshot()["distance_mismatches"] == 1


def test_match_beyond_sanity_ceiling_is_rejected():
    stats = ResolutionStats()
    zones = [GeofenceZone("Misplaced Client", 36.0, -94.0, 400.0, ZoneType.CLIENT)]
    table = ZoneTable(zones, sanity_ceiling_m=300.0, stats=stats)

    # ~356 m out: inside the radius but past the ceiling.
    with capture_logs() as logs:
        assert table.best_match(36.0032, -94.0) is None
        assert table.find_location_match(36.0032, -94.0) is None

    rejected = [e for e in logs if e["event"] == "zone_match_rejected"]
    assert rejected[0]["zone"] == "Misplaced Client"
    assert rejected[0]["max_reasonable_m"] == 300.0
    assert stats.snapshot()["rejected_matches"] == 2

    # ~223 m out is within both.
    assert table.best_match(36.0020, -94.0).zone.name == "Misplaced Client"


def test_large_property_allows_one_and_a_half_radius():
    zones = [GeofenceZone("Sunset Estates POA", 36.0, -94.0, 800.0, ZoneType.CLIENT)]

    # ~724 m out is past the 500 m default ceiling but within 1.5x the radius.
    for ceiling in (500.0, 300.0):
        table = ZoneTable(zones, sanity_ceiling_m=ceiling)
        with capture_logs() as logs:
            match = table.best_match(36.0065, -94.0)
        assert match is not None
        assert 700 < match.distance_m < 800
        assert not [e for e in logs if e["event"] == "zone_match_rejected"]


def test_find_location_match_reports_type():
    table = ZoneTable()
    home = table.find_location_match(*HOME)
    assert home.type == ZoneType.HOME_BASE
    assert home.name == "McRay Shop"

    client = table.find_location_match(*SHILOH)
    assert client.to_dict() == {"type": "client", "name": "Shiloh Museum of Ozark History",
                                "distance_m": 0.0}


def test_replace_swaps_home_base():
    table = ZoneTable()
    table.replace([GeofenceZone("Client Only", 36.0, -94.0, 100.0, ZoneType.CLIENT)])
    assert table.home_base is None
    assert table.at_home_base(*HOME) is None


def test_default_radius_by_name():
    assert default_radius_for("Sunset Estates POA") == 400.0
    assert default_radius_for("Westside Elementary School") == 300.0
    assert default_radius_for("Circle of Life Hospice") == 200.0
    assert default_radius_for("Arvest Bank") == 150.0
    assert default_radius_for("Shiloh Museum of Ozark History") == 150.0
    assert default_radius_for("Jane Smith") == 100.0


@pytest.mark.asyncio
async def test_build_zones_geocodes_missing_coordinates():
    geocoder = FakeGeocoder(coords={"901 Jones Road, Springdale, AR": (36.178393, -94.2095189)})
    records = [
        ZoneRecord("McRay Shop", lat=36.183115, lon=-94.169488, radius_m=200.0, type=ZoneType.HOME_BASE),
        ZoneRecord("Circle of Life Hospice", address="901 Jones Road, Springdale, AR"),
        ZoneRecord("Nowhere Client", address="1 Unknown Rd"),
        ZoneRecord("No Address Client"),
    ]
    zones = await build_zones(records, geocoder, delay_seconds=0)

    assert [z.name for z in zones] == ["McRay Shop", "Circle of Life Hospice"]
    assert zones[1].radius_m == 200.0
    assert zones[1].latitude == 36.178393
    assert geocoder.forward_calls == ["901 Jones Road, Springdale, AR", "1 Unknown Rd"]


@pytest.mark.asyncio
async def test_build_zones_skips_on_geocoder_failure():
    zones = await build_zones([ZoneRecord("Client", address="1 Main St")],
                              FakeGeocoder(fail=True), delay_seconds=0)
    assert zones == []


class _Source:
    def __init__(self, records=None, error=None) -> None:
        self.records = records or []
        self.error = error

    def load(self):
        if self.error:
            raise self.error
        return self.records


@pytest.mark.asyncio
async def test_load_falls_back_to_seed_list():
    table = ZoneTable([])
    count = await load_zone_table(table, _Source(error=OSError("disk gone")))
    assert count == len(SEED_ZONES)
    assert table.home_base.name == "McRay Shop"


@pytest.mark.asyncio
async def test_load_inserts_seed_home_base_when_missing():
    table = ZoneTable([])
    source = _Source([ZoneRecord("Shiloh", lat=36.1873, lon=-94.13121, radius_m=100.0)])
    count = await load_zone_table(table, source)
    assert count == 2
    assert table.zones[0].type == ZoneType.HOME_BASE
    assert table.zones[1].name == "Shiloh"
