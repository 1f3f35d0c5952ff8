"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest
from httpx import ASGITransport, AsyncClient

import fleettrack.main as main_module
from fleettrack.config import AppConfig
from fleettrack.core.location_cache import LocationCache
from fleettrack.core.models import GpsFix
from fleettrack.core.quota import DailyQuota
from fleettrack.core.resolver import GeofenceResolver, default_cascade
from fleettrack.core.stats import ResolutionStats
from fleettrack.core.timeline import TimelineService
from fleettrack.core.zones import ZoneTable
from fleettrack.geocoding.base import GeocodingError, Place
from fleettrack.storage.fix_store import FileFixStore
from fleettrack.storage.label_store import FileLabelStore
from fleettrack.storage.zone_file import YamlZoneFile

CHICAGO = ZoneInfo("America/Chicago")

HOME = (36.183115, -94.169488)
SHILOH = (36.1873, -94.13121)
# Open road between the two, well outside every seed zone.
ROADSIDE = (36.1950, -94.1500)


def local(hour: int, minute: int = 0, second: int = 0, day: int = 1) -> datetime:
    return datetime(2025, 5, day, hour, minute, second, tzinfo=CHICAGO)


def make_fix(lat, lon, ts, moving=True, vehicle="van-1", speed=None, battery=None) -> GpsFix:
    return GpsFix(vehicle_id=vehicle, latitude=lat, longitude=lon, timestamp=ts,
                  speed=speed, battery_level=battery, moving=moving)


def drive(frm, to, start: datetime, minutes: int, vehicle="van-1", battery=None) -> list[GpsFix]:
    """One moving fix per minute along a straight line, ``frm`` inclusive, ``to`` exclusive."""
    fixes = []
    for k in range(minutes):
        f = k / minutes
        fixes.append(make_fix(frm[0] + (to[0] - frm[0]) * f,
                              frm[1] + (to[1] - frm[1]) * f,
                              start + timedelta(minutes=k), moving=True,
                              vehicle=vehicle, speed=25.0,
                              battery=None if battery is None else battery - k * 0.1))
    return fixes


def park(at, start: datetime, minutes: int, vehicle="van-1", battery=None) -> list[GpsFix]:
    """One stationary fix per minute at ``at``."""
    return [make_fix(at[0], at[1], start + timedelta(minutes=k), moving=False,
                     vehicle=vehicle, speed=0.0, battery=battery)
            for k in range(minutes)]


class FakeGeocoder:
    """AddressGeocoder double; records calls and can be told to fail."""

    def __init__(self, label: str | None = "118 W Johnson Ave, Springdale, Arkansas",
                 fail: bool = False, coords: dict | None = None) -> None:
        self.label = label
        self.fail = fail
        self.coords = coords or {}
        self.reverse_calls: list[tuple[float, float]] = []
        self.forward_calls: list[str] = []

    async def reverse(self, lat, lon):
        self.reverse_calls.append((lat, lon))
        if self.fail:
            raise GeocodingError("geocoder down")
        return self.label

    async def forward(self, address):
        self.forward_calls.append(address)
        if self.fail:
            raise GeocodingError("geocoder down")
        return self.coords.get(address)


class FakePlaceFinder:
    def __init__(self, places: list[Place] | None = None, fail: bool = False) -> None:
        self.places = places or []
        self.fail = fail
        self.calls = 0

    async def nearby(self, lat, lon, radius_m):
        self.calls += 1
        if self.fail:
            raise GeocodingError("places down")
        return list(self.places)


@pytest.fixture
def geocoder():
    return FakeGeocoder()


@pytest.fixture
def fixed_now():
    return local(18, 0)


@pytest.fixture(autouse=True)
def _init_server(tmp_path, geocoder, fixed_now):
    """Initialize server singletons for every test, using a temp directory."""
    config = AppConfig()
    config.storage.fixes_dir = str(tmp_path / "fixes")
    config.storage.cache_path = str(tmp_path / "location_cache.json")
    config.storage.zones_path = str(tmp_path / "zones.yaml")
    config.logging.level = "warning"

    stats = ResolutionStats()
    quota = DailyQuota(config.geocoding.daily_places_quota, config.server.timezone,
                       clock=lambda: fixed_now)
    cache = LocationCache(FileLabelStore(config.storage.cache_path))
    zones = ZoneTable(stats=stats)
    resolver = GeofenceResolver(default_cascade(zones, cache, geocoder=geocoder),
                                cache=cache, stats=stats)
    fix_store = FileFixStore(config.storage.fixes_dir)
    timeline = TimelineService(fix_store, resolver, zones, stats=stats,
                               tz_name=config.server.timezone, clock=lambda: fixed_now)

    # Patch module-level singletons
    main_module._config = config
    main_module._stats = stats
    main_module._quota = quota
    main_module._cache = cache
    main_module._zones = zones
    main_module._resolver = resolver
    main_module._fix_store = fix_store
    main_module._timeline = timeline
    main_module._zone_source = YamlZoneFile(config.storage.zones_path)
    main_module._geocoder = geocoder

    yield

    # Cleanup
    main_module._config = None
    main_module._stats = None
    main_module._quota = None
    main_module._cache = None
    main_module._zones = None
    main_module._resolver = None
    main_module._fix_store = None
    main_module._timeline = None
    main_module._zone_source = None
    main_module._geocoder = None


@pytest.fixture
async def client():
    from fleettrack.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
