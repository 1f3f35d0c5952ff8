"""Geofence zone table: home base, client and supplier circles.

The table is loaded once at startup (or on an explicit reload) and is
read-only in between: ``replace()`` swaps the whole tuple so concurrent
readers always see a consistent set of zones.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable

import structlog

from fleettrack.core.geo import MISMATCH_THRESHOLD_M, cross_checked_distance, haversine_m
from fleettrack.core.models import GeofenceZone, LocationMatch, ZoneType

if TYPE_CHECKING:
    from fleettrack.core.stats import ResolutionStats
    from fleettrack.geocoding.base import AddressGeocoder
    from fleettrack.storage.base import ZoneSource

log = structlog.get_logger()

# Matches farther than the sanity ceiling are treated as a bad coordinate.
# Zones larger than LARGE_PROPERTY_RADIUS_M are allowed 1.5x their radius.
SANITY_CEILING_M = 500.0
LARGE_PROPERTY_RADIUS_M = 500.0

# Static fallback when the zone configuration source is unavailable.
SEED_ZONES: tuple[GeofenceZone, ...] = (
    GeofenceZone("McRay Shop", 36.183115, -94.169488, 200.0, ZoneType.HOME_BASE,
                 "3510 McRay Ave, Springdale, AR 72762"),
    GeofenceZone("Shiloh Museum of Ozark History", 36.1873, -94.13121, 100.0, ZoneType.CLIENT,
                 "118 West Johnson Ave, Springdale, AR 72764"),
    GeofenceZone("Circle of Life Springdale", 36.178393, -94.2095189, 100.0, ZoneType.CLIENT,
                 "901 Jones Road, Springdale, AR 72762"),
    GeofenceZone("Home Depot - Rogers", 36.3319, -94.1186, 150.0, ZoneType.SUPPLIER,
                 "Home Depot, Rogers, AR"),
    GeofenceZone("Lowe's - Bentonville", 36.3728, -94.2088, 150.0, ZoneType.SUPPLIER,
                 "Lowe's, Bentonville, AR"),
    GeofenceZone("The Sod Store", 36.2019, -94.1302, 100.0, ZoneType.SUPPLIER,
                 "The Sod Store, Springdale, AR"),
)

# Keyword → radius (meters) for zones configured without one. First hit wins.
_RADIUS_BY_KEYWORD: tuple[tuple[tuple[str, ...], float], ...] = (
    (("apartments", "estates", "poa"), 400.0),
    (("retirement", "school"), 300.0),
    (("hospice",), 200.0),
    (("llc", "investments"), 200.0),
    (("bank", "financial"), 150.0),
    (("museum", "center", "services"), 150.0),
)
DEFAULT_RADIUS_M = 100.0


def default_radius_for(name: str) -> float:
    """Radius by property scale: residential ~100 m, large commercial larger."""
    lowered = name.lower()
    for keywords, radius in _RADIUS_BY_KEYWORD:
        if any(k in lowered for k in keywords):
            return radius
    return DEFAULT_RADIUS_M


@dataclass(frozen=True)
class ZoneRecord:
    """A zone as configured; coordinates and radius may still be missing."""
    name: str
    address: str = ""
    lat: float | None = None
    lon: float | None = None
    radius_m: float | None = None
    type: ZoneType = ZoneType.CLIENT


@dataclass(frozen=True)
class ZoneMatch:
    zone: GeofenceZone
    distance_m: float

    def to_location_match(self) -> LocationMatch:
        return LocationMatch(type=self.zone.type, name=self.zone.name, distance_m=self.distance_m)


class ZoneTable:
    """Read-mostly collection of zones with membership tests."""

    def __init__(
        self,
        zones: Iterable[GeofenceZone] = SEED_ZONES,
        mismatch_threshold_m: float = MISMATCH_THRESHOLD_M,
        sanity_ceiling_m: float = SANITY_CEILING_M,
        stats: ResolutionStats | None = None,
    ) -> None:
        self._mismatch_threshold = mismatch_threshold_m
        self._ceiling = sanity_ceiling_m
        self._stats = stats
        self._zones: tuple[GeofenceZone, ...] = ()
        self._home_base: GeofenceZone | None = None
        self.replace(zones)

    @property
    def zones(self) -> tuple[GeofenceZone, ...]:
        return self._zones

    @property
    def home_base(self) -> GeofenceZone | None:
        return self._home_base

    def replace(self, zones: Iterable[GeofenceZone]) -> None:
        zones = tuple(zones)
        home = next((z for z in zones if z.type == ZoneType.HOME_BASE), None)
        # Assign together so readers never see a home base from another table.
        self._zones, self._home_base = zones, home
        log.info("zones_loaded", total=len(zones),
                 home_base=home.name if home else None)

    def at_home_base(self, lat: float, lon: float) -> ZoneMatch | None:
        home = self._home_base
        if home is None:
            return None
        distance = haversine_m(lat, lon, home.latitude, home.longitude)
        if distance <= home.radius_m:
            return ZoneMatch(home, distance)
        return None

    def _ceiling_for(self, zone: GeofenceZone) -> float:
        return zone.radius_m * 1.5 if zone.radius_m > LARGE_PROPERTY_RADIUS_M else self._ceiling

    def matching_zones(self, lat: float, lon: float) -> list[ZoneMatch]:
        """Every zone containing the point, using the conservative distance."""
        matches: list[ZoneMatch] = []
        for zone in self._zones:
            check = cross_checked_distance(lat, lon, zone.latitude, zone.longitude,
                                           self._mismatch_threshold)
            if check.mismatch:
                log.warning("distance_formula_mismatch", zone=zone.name,
                            haversine_m=round(check.haversine_m, 1),
                            planar_m=round(check.planar_m, 1),
                            diff_m=round(check.disagreement_m, 1),
                            lat=lat, lon=lon,
                            zone_lat=zone.latitude, zone_lon=zone.longitude)
                if self._stats is not None:
                    self._stats.record_mismatch()

            distance = check.distance_m
            if distance > zone.radius_m:
                continue
            ceiling = self._ceiling_for(zone)
            if distance > ceiling:
                log.warning("zone_match_rejected", zone=zone.name,
                            distance_m=round(distance, 1), radius_m=zone.radius_m,
                            max_reasonable_m=ceiling, lat=lat, lon=lon)
                if self._stats is not None:
                    self._stats.record_rejected_match()
                continue
            matches.append(ZoneMatch(zone, distance))
        return matches

    def best_match(self, lat: float, lon: float) -> ZoneMatch | None:
        """Home base wins among several hits; otherwise the nearest zone."""
        matches = self.matching_zones(lat, lon)
        if not matches:
            return None
        for m in matches:
            if m.zone.type == ZoneType.HOME_BASE:
                return m
        return min(matches, key=lambda m: m.distance_m)

    def find_location_match(self, lat: float, lon: float) -> LocationMatch | None:
        """Live zone lookup used for arrival/departure detection."""
        match = self.at_home_base(lat, lon) or self.best_match(lat, lon)
        return match.to_location_match() if match else None


async def build_zones(
    records: Iterable[ZoneRecord],
    geocoder: AddressGeocoder | None = None,
    delay_seconds: float = 0.1,
) -> list[GeofenceZone]:
    """Turn configured records into zones, geocoding any without coordinates."""
    from fleettrack.geocoding.base import GeocodingError

    zones: list[GeofenceZone] = []
    for rec in records:
        lat, lon = rec.lat, rec.lon
        if lat is None or lon is None:
            if geocoder is None or not rec.address:
                log.warning("zone_skipped_no_coordinates", zone=rec.name)
                continue
            try:
                coords = await geocoder.forward(rec.address)
            except GeocodingError:
                log.warning("zone_geocode_failed", zone=rec.name, address=rec.address,
                            exc_info=True)
                coords = None
            if coords is None:
                continue
            lat, lon = coords
            log.info("zone_geocoded", zone=rec.name, lat=lat, lon=lon)
            # Stay polite with the free geocoder.
            await asyncio.sleep(delay_seconds)

        radius = rec.radius_m or default_radius_for(rec.name)
        zones.append(GeofenceZone(rec.name, lat, lon, float(radius), rec.type, rec.address))
    return zones


async def load_zone_table(
    table: ZoneTable,
    source: ZoneSource | None,
    geocoder: AddressGeocoder | None = None,
) -> int:
    """(Re)load zones from the source, falling back to the seed list."""
    zones: list[GeofenceZone] = []
    if source is not None:
        try:
            zones = await build_zones(source.load(), geocoder)
        except (OSError, ValueError):
            log.error("zone_source_failed", exc_info=True)
            zones = []

    if not zones:
        log.warning("zones_using_seed_list", count=len(SEED_ZONES))
        zones = list(SEED_ZONES)
    elif not any(z.type == ZoneType.HOME_BASE for z in zones):
        seed_home = next(z for z in SEED_ZONES if z.type == ZoneType.HOME_BASE)
        log.warning("zones_missing_home_base", using=seed_home.name)
        zones.insert(0, seed_home)

    table.replace(zones)
    return len(zones)
