"""Geocoding interfaces (ports) for the external lookup tiers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


class GeocodingError(Exception):
    """An external geocoding call failed (network, HTTP status, provider status)."""


@dataclass(frozen=True)
class Place:
    name: str
    types: tuple[str, ...] = ()
    vicinity: str = ""


class AddressGeocoder(Protocol):
    """Port: free-tier reverse/forward address lookup."""

    async def reverse(self, lat: float, lon: float) -> str | None: ...

    async def forward(self, address: str) -> tuple[float, float] | None: ...


class PlaceFinder(Protocol):
    """Port: paid "nearby places" search."""

    async def nearby(self, lat: float, lon: float, radius_m: float) -> list[Place]: ...
