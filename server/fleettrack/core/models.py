"""fleettrack — core internal data models.

These are plain dataclasses with no framework dependencies.
JSON bodies and file records are converted to/from these at the boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ZoneType(str, Enum):
    HOME_BASE = "home_base"
    CLIENT = "client"
    SUPPLIER = "supplier"


class LocationSource(str, Enum):
    """Which resolution tier produced a label."""
    CUSTOM = "custom"
    HOME_BASE = "home_base"
    CLIENT = "client"
    PLACES_API = "places_api"
    FREE_GEOCODE = "free_geocode"
    COORDINATES = "coordinates"

    @property
    def authoritative(self) -> bool:
        """Authoritative labels are persisted immediately and never evicted."""
        return self in _AUTHORITATIVE


_AUTHORITATIVE = frozenset({
    LocationSource.CUSTOM,
    LocationSource.HOME_BASE,
    LocationSource.CLIENT,
    LocationSource.PLACES_API,
})


class StopClassification(str, Enum):
    CLIENT_VISIT = "client_visit"
    SERVICE_STOP = "service_stop"
    UNKNOWN_STOP = "unknown_stop"


# Vehicle state passed to the resolver; only "parked" unlocks the paid tier.
PARKED = "parked"
MOVING = "moving"


@dataclass(frozen=True)
class GpsFix:
    vehicle_id: str
    latitude: float
    longitude: float
    timestamp: datetime
    speed: float | None = None
    battery_level: float | None = None
    ignition_state: str | None = None
    moving: bool = False

    def to_dict(self) -> dict:
        return {
            "vehicle_id": self.vehicle_id,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "timestamp": self.timestamp.isoformat(),
            "speed": self.speed,
            "battery_level": self.battery_level,
            "ignition_state": self.ignition_state,
            "moving": self.moving,
        }


@dataclass(frozen=True)
class GeofenceZone:
    name: str
    latitude: float
    longitude: float
    radius_m: float
    type: ZoneType = ZoneType.CLIENT
    address: str = ""

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "address": self.address,
            "lat": self.latitude,
            "lon": self.longitude,
            "radius_m": self.radius_m,
            "type": self.type.value,
        }


@dataclass(frozen=True)
class ResolvedLocation:
    label: str
    source: LocationSource
    zone_type: ZoneType | None = None

    @property
    def is_zone(self) -> bool:
        return self.zone_type is not None

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "source": self.source.value,
            "zone_type": self.zone_type.value if self.zone_type else None,
        }


@dataclass(frozen=True)
class LocationMatch:
    """A live geofence hit, as reported to alerting collaborators."""
    type: ZoneType
    name: str
    distance_m: float = 0.0

    def to_dict(self) -> dict:
        return {"type": self.type.value, "name": self.name,
                "distance_m": round(self.distance_m, 1)}


@dataclass(frozen=True)
class TripEndpoint:
    latitude: float
    longitude: float
    location: ResolvedLocation
    battery_level: float | None = None

    @property
    def address(self) -> str:
        return self.location.label

    @property
    def client_name(self) -> str | None:
        return self.location.label if self.location.is_zone else None

    def same_place(self, other: TripEndpoint) -> bool:
        return (self.latitude, self.longitude) == (other.latitude, other.longitude)

    def to_dict(self) -> dict:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "address": self.address,
            "client_name": self.client_name,
            "source": self.location.source.value,
            "battery_level": self.battery_level,
        }


@dataclass(frozen=True)
class Trip:
    id: str
    vehicle_id: str
    start_time: datetime
    end_time: datetime
    start_location: TripEndpoint
    end_location: TripEndpoint
    distance_miles: float
    duration_minutes: float
    battery_used_pct: float
    avg_speed: float
    max_speed: float
    route: tuple[GpsFix, ...] = ()

    def to_dict(self, include_route: bool = True) -> dict:
        data = {
            "id": self.id,
            "vehicle_id": self.vehicle_id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "start_location": self.start_location.to_dict(),
            "end_location": self.end_location.to_dict(),
            "distance_miles": self.distance_miles,
            "duration_minutes": self.duration_minutes,
            "battery_used_pct": self.battery_used_pct,
            "avg_speed": self.avg_speed,
            "max_speed": self.max_speed,
        }
        if include_route:
            data["route"] = [fix.to_dict() for fix in self.route]
        return data


@dataclass(frozen=True)
class Stop:
    id: str
    vehicle_id: str
    start_time: datetime
    end_time: datetime
    location: TripEndpoint
    duration_minutes: float
    classification: StopClassification
    ongoing: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vehicle_id": self.vehicle_id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "location": self.location.to_dict(),
            "duration_minutes": self.duration_minutes,
            "classification": self.classification.value,
            "ongoing": self.ongoing,
        }


@dataclass(frozen=True)
class TimelineSummary:
    total_distance: float = 0.0
    total_duration: float = 0.0
    moving_time: float = 0.0
    stopped_time: float = 0.0
    battery_used: float = 0.0
    client_visit_count: int = 0
    avg_speed: float = 0.0
    max_speed: float = 0.0
    total_trips: int = 0

    def to_dict(self) -> dict:
        return {
            "total_distance": self.total_distance,
            "total_duration": self.total_duration,
            "moving_time": self.moving_time,
            "stopped_time": self.stopped_time,
            "battery_used": self.battery_used,
            "client_visit_count": self.client_visit_count,
            "avg_speed": self.avg_speed,
            "max_speed": self.max_speed,
            "total_trips": self.total_trips,
        }


@dataclass(frozen=True)
class Timeline:
    vehicle_id: str
    start: datetime
    end: datetime
    trips: list[Trip] = field(default_factory=list)
    stops: list[Stop] = field(default_factory=list)
    summary: TimelineSummary = field(default_factory=TimelineSummary)

    def to_dict(self, include_route: bool = True) -> dict:
        return {
            "vehicle_id": self.vehicle_id,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "trips": [t.to_dict(include_route) for t in self.trips],
            "stops": [s.to_dict() for s in self.stops],
            "summary": self.summary.to_dict(),
        }
