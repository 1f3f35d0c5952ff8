"""Free-tier geocoding via OpenStreetMap Nominatim.

Nominatim is rate-limited and asks for a descriptive User-Agent; the shared
httpx client carries the timeout.
"""

from __future__ import annotations

import httpx
import structlog

from fleettrack.geocoding.base import GeocodingError

log = structlog.get_logger()

DEFAULT_URL = "https://nominatim.openstreetmap.org"


def format_address(data: dict) -> str | None:
    """Street-level label: house number, road, city, state."""
    address = data.get("address") or {}
    parts = [
        address.get("house_number"),
        address.get("road"),
        address.get("city") or address.get("town") or address.get("village"),
        address.get("state"),
    ]
    label = ", ".join(p for p in parts if p)
    if label:
        return label
    display = data.get("display_name")
    if display:
        return ",".join(display.split(",")[:3]).strip()
    return None


class NominatimGeocoder:
    """AddressGeocoder backed by the Nominatim HTTP API."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str = DEFAULT_URL,
        user_agent: str = "fleettrack/0.1",
    ) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._headers = {"User-Agent": user_agent}

    async def _get(self, path: str, params: dict) -> object:
        try:
            resp = await self._client.get(f"{self._base_url}{path}", params=params,
                                          headers=self._headers)
            resp.raise_for_status()
            return resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise GeocodingError(f"nominatim {path} failed: {exc}") from exc

    async def reverse(self, lat: float, lon: float) -> str | None:
        data = await self._get("/reverse", {
            "format": "json", "lat": lat, "lon": lon, "zoom": 18, "addressdetails": 1,
        })
        if not isinstance(data, dict) or "error" in data:
            return None
        label = format_address(data)
        log.debug("reverse_geocoded", lat=lat, lon=lon, label=label)
        return label

    async def forward(self, address: str) -> tuple[float, float] | None:
        data = await self._get("/search", {"format": "json", "q": address, "limit": 1})
        if not isinstance(data, list) or not data:
            return None
        try:
            return float(data[0]["lat"]), float(data[0]["lon"])
        except (KeyError, TypeError, ValueError) as exc:
            raise GeocodingError(f"nominatim search returned malformed result for {address!r}") from exc
