"""Geofence resolver — turns a coordinate into a business-meaningful label.

The cascade is an ordered list of strategies sharing one ``attempt()``
method; the first non-None result wins:

1. custom overrides        (hand-curated coordinate → label table)
2. home base zone
3. client/supplier zones   (cross-checked distance, sanity ceiling)
4. durable cache lookup
5. paid nearby-places      (parked vehicles only, daily quota)
6. free reverse geocoding
7. raw coordinates         (never fails)

Tiers 1-3 and 5 are written to the cache immediately; tier 6 is cached but
evictable from memory. Any exception inside a tier is logged and the cascade
moves on.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Protocol, Sequence

import structlog

from fleettrack.core.geo import haversine_m
from fleettrack.core.models import PARKED, LocationSource, ResolvedLocation, ZoneType

if TYPE_CHECKING:
    from fleettrack.core.location_cache import LocationCache
    from fleettrack.core.quota import DailyQuota
    from fleettrack.core.stats import ResolutionStats
    from fleettrack.core.zones import ZoneTable
    from fleettrack.geocoding.base import AddressGeocoder, Place, PlaceFinder

log = structlog.get_logger()

CUSTOM_MATCH_RADIUS_M = 50.0
PLACES_SEARCH_RADIUS_M = 45.0

# Administrative/political results are never a useful stop label.
_EXCLUDED_PLACE_TYPES = frozenset({
    "political", "country", "locality", "sublocality", "neighborhood",
    "colloquial_area", "postal_code", "route", "street_address", "premise",
    "administrative_area_level_1", "administrative_area_level_2",
    "administrative_area_level_3", "administrative_area_level_4",
})
# Minor service kiosks sit inside bigger businesses; skip them.
_MINOR_SERVICE_TYPES = frozenset({"atm"})
_MINOR_SERVICE_NAME = re.compile(r"\b(atm|vending|kiosk|redbox|coinstar|air pump|ice machine)\b", re.I)
_GENERIC_PLACE_TYPES = frozenset({"point_of_interest", "establishment"})


@dataclass(frozen=True)
class ResolutionQuery:
    lat: float
    lon: float
    vehicle_state: str | None = None


@dataclass(frozen=True)
class CustomLocation:
    lat: float
    lon: float
    label: str


class ResolutionStrategy(Protocol):
    """One tier of the cascade."""

    name: str
    # Whether a result from this tier is written to the location cache.
    cache_result: bool

    async def attempt(self, query: ResolutionQuery) -> ResolvedLocation | None: ...


class CustomOverrides:
    name = "custom"
    cache_result = True

    def __init__(self, overrides: Iterable[CustomLocation], radius_m: float = CUSTOM_MATCH_RADIUS_M) -> None:
        self._overrides = tuple(overrides)
        self._radius = radius_m

    async def attempt(self, query: ResolutionQuery) -> ResolvedLocation | None:
        best: CustomLocation | None = None
        best_dist = self._radius
        for entry in self._overrides:
            if (entry.lat, entry.lon) == (query.lat, query.lon):
                return ResolvedLocation(entry.label, LocationSource.CUSTOM)
            d = haversine_m(query.lat, query.lon, entry.lat, entry.lon)
            if d <= best_dist:
                best, best_dist = entry, d
        if best is None:
            return None
        return ResolvedLocation(best.label, LocationSource.CUSTOM)


class HomeBaseZone:
    name = "home_base"
    cache_result = True

    def __init__(self, zones: ZoneTable) -> None:
        self._zones = zones

    async def attempt(self, query: ResolutionQuery) -> ResolvedLocation | None:
        match = self._zones.at_home_base(query.lat, query.lon)
        if match is None:
            return None
        return ResolvedLocation(match.zone.name, LocationSource.HOME_BASE, ZoneType.HOME_BASE)


class ClientZones:
    name = "client"
    cache_result = True

    def __init__(self, zones: ZoneTable) -> None:
        self._zones = zones

    async def attempt(self, query: ResolutionQuery) -> ResolvedLocation | None:
        match = self._zones.best_match(query.lat, query.lon)
        if match is None:
            return None
        zone = match.zone
        source = LocationSource.HOME_BASE if zone.type == ZoneType.HOME_BASE else LocationSource.CLIENT
        log.debug("zone_matched", zone=zone.name, distance_m=round(match.distance_m, 1),
                  radius_m=zone.radius_m)
        return ResolvedLocation(zone.name, source, zone.type)


class CachedLabel:
    name = "cache"
    cache_result = False

    def __init__(self, cache: LocationCache) -> None:
        self._cache = cache

    async def attempt(self, query: ResolutionQuery) -> ResolvedLocation | None:
        record = self._cache.get(query.lat, query.lon)
        return record.to_resolved() if record else None


def choose_place(places: Sequence[Place]) -> Place | None:
    """Pick a named business, skipping political areas and minor kiosks."""
    candidates = [
        p for p in places
        if p.name
        and not (set(p.types) & _EXCLUDED_PLACE_TYPES)
        and not (set(p.types) & _MINOR_SERVICE_TYPES)
        and not _MINOR_SERVICE_NAME.search(p.name)
    ]
    for p in candidates:
        if set(p.types) - _GENERIC_PLACE_TYPES:
            return p
    return candidates[0] if candidates else None


class PlacesLookup:
    name = "places_api"
    cache_result = True

    def __init__(self, finder: PlaceFinder, quota: DailyQuota,
                 radius_m: float = PLACES_SEARCH_RADIUS_M) -> None:
        self._finder = finder
        self._quota = quota
        self._radius = radius_m

    async def attempt(self, query: ResolutionQuery) -> ResolvedLocation | None:
        if query.vehicle_state != PARKED:
            return None
        # Counts every attempt, whatever the outcome.
        if not self._quota.try_acquire():
            log.debug("places_quota_exhausted", lat=query.lat, lon=query.lon)
            return None
        places = await self._finder.nearby(query.lat, query.lon, self._radius)
        place = choose_place(places)
        if place is None:
            return None
        return ResolvedLocation(place.name, LocationSource.PLACES_API)


class FreeGeocode:
    name = "free_geocode"
    cache_result = True

    def __init__(self, geocoder: AddressGeocoder) -> None:
        self._geocoder = geocoder

    async def attempt(self, query: ResolutionQuery) -> ResolvedLocation | None:
        address = await self._geocoder.reverse(query.lat, query.lon)
        if not address:
            return None
        return ResolvedLocation(address, LocationSource.FREE_GEOCODE)


def format_coordinates(lat: float, lon: float) -> str:
    return f"{lat:.4f}, {lon:.4f}"


class CoordinatesFallback:
    name = "coordinates"
    cache_result = False

    async def attempt(self, query: ResolutionQuery) -> ResolvedLocation | None:
        return ResolvedLocation(format_coordinates(query.lat, query.lon), LocationSource.COORDINATES)


def validate_coordinates(lat: float, lon: float) -> None:
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise ValueError(f"non-finite coordinate ({lat}, {lon})")
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
        raise ValueError(f"coordinate out of range ({lat}, {lon})")


class GeofenceResolver:
    """Runs the cascade. Collaborators are injected; nothing is global."""

    def __init__(
        self,
        strategies: Sequence[ResolutionStrategy],
        cache: LocationCache | None = None,
        stats: ResolutionStats | None = None,
    ) -> None:
        self._strategies = tuple(strategies)
        self._cache = cache
        self._stats = stats

    @property
    def tiers(self) -> list[str]:
        return [s.name for s in self._strategies]

    async def resolve(self, lat: float, lon: float, vehicle_state: str | None = None) -> ResolvedLocation:
        """Resolve a coordinate. Raises ValueError only for invalid coordinates."""
        validate_coordinates(lat, lon)
        query = ResolutionQuery(lat, lon, vehicle_state)

        for strategy in self._strategies:
            try:
                result = await strategy.attempt(query)
            except Exception:
                log.warning("resolution_tier_failed", tier=strategy.name,
                            lat=lat, lon=lon, exc_info=True)
                if self._stats is not None:
                    self._stats.record_tier_failure(strategy.name)
                continue
            if result is None:
                continue

            if strategy.cache_result and self._cache is not None:
                self._cache.put(lat, lon, result)
            if self._stats is not None:
                self._stats.record_resolution(result.source.value)
            return result

        # Only reachable when the cascade has no coordinates tier.
        return ResolvedLocation(format_coordinates(lat, lon), LocationSource.COORDINATES)


def default_cascade(
    zones: ZoneTable,
    cache: LocationCache,
    geocoder: AddressGeocoder | None = None,
    finder: PlaceFinder | None = None,
    quota: DailyQuota | None = None,
    custom_locations: Iterable[CustomLocation] = (),
    custom_radius_m: float = CUSTOM_MATCH_RADIUS_M,
    places_radius_m: float = PLACES_SEARCH_RADIUS_M,
) -> list[ResolutionStrategy]:
    """Build the standard tier order; absent collaborators drop their tier."""
    strategies: list[ResolutionStrategy] = [
        CustomOverrides(custom_locations, custom_radius_m),
        HomeBaseZone(zones),
        ClientZones(zones),
        CachedLabel(cache),
    ]
    if finder is not None and quota is not None:
        strategies.append(PlacesLookup(finder, quota, places_radius_m))
    if geocoder is not None:
        strategies.append(FreeGeocode(geocoder))
    strategies.append(CoordinatesFallback())
    return strategies
