"""Distance calculator: great-circle and planar distances between fixes.

Both formulas are O(1). The planar (equirectangular) approximation exists to
cross-check the great-circle result when testing zone membership: a large
disagreement means one of the coordinates is probably wrong.
"""

from __future__ import annotations

import math
from dataclasses import dataclass


# Earth radius in meters (for Haversine).
_EARTH_R = 6_371_000.0

# Approximate meters per degree of latitude (planar approximation).
_DEG_TO_M = 111_320.0

METERS_PER_MILE = 1_609.344

# Formulas disagreeing by more than this are reported as an anomaly.
MISMATCH_THRESHOLD_M = 100.0


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters between two points."""
    rlat1, rlat2 = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = math.sin(dlat / 2) ** 2 + math.cos(rlat1) * math.cos(rlat2) * math.sin(dlon / 2) ** 2
    return 2 * _EARTH_R * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def planar_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Equirectangular distance in meters, longitude scaled at the first latitude."""
    dy = (lat2 - lat1) * _DEG_TO_M
    dx = (lon2 - lon1) * _DEG_TO_M * math.cos(math.radians(lat1))
    return math.hypot(dx, dy)


def meters_to_miles(meters: float) -> float:
    return meters / METERS_PER_MILE


@dataclass(frozen=True)
class DistanceCheck:
    """Both distances for one coordinate pair, plus the conservative pick."""
    haversine_m: float
    planar_m: float
    threshold_m: float = MISMATCH_THRESHOLD_M

    @property
    def disagreement_m(self) -> float:
        return abs(self.haversine_m - self.planar_m)

    @property
    def mismatch(self) -> bool:
        return self.disagreement_m > self.threshold_m

    @property
    def distance_m(self) -> float:
        """The larger of the two, so a bad coordinate never admits a false match."""
        return max(self.haversine_m, self.planar_m)


def cross_checked_distance(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
    threshold_m: float = MISMATCH_THRESHOLD_M,
) -> DistanceCheck:
    return DistanceCheck(
        haversine_m=haversine_m(lat1, lon1, lat2, lon2),
        planar_m=planar_m(lat1, lon1, lat2, lon2),
        threshold_m=threshold_m,
    )


def path_length_m(points: list[tuple[float, float]]) -> float:
    """Sum of consecutive great-circle distances along a (lat, lon) path."""
    total = 0.0
    for (lat1, lon1), (lat2, lon2) in zip(points, points[1:]):
        total += haversine_m(lat1, lon1, lat2, lon2)
    return total
