"""Paid nearby-places search (Google Places "nearbysearch").

Quota is enforced by the caller; this adapter only talks HTTP.
"""

from __future__ import annotations

import httpx

from fleettrack.geocoding.base import GeocodingError, Place

DEFAULT_URL = "https://maps.googleapis.com/maps/api/place/nearbysearch/json"


class GooglePlacesFinder:
    """PlaceFinder backed by the Places nearby search endpoint."""

    def __init__(self, client: httpx.AsyncClient, api_key: str, url: str = DEFAULT_URL) -> None:
        self._client = client
        self._api_key = api_key
        self._url = url

    async def nearby(self, lat: float, lon: float, radius_m: float) -> list[Place]:
        try:
            resp = await self._client.get(self._url, params={
                "location": f"{lat},{lon}",
                "radius": int(radius_m),
                "key": self._api_key,
            })
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise GeocodingError(f"places search failed: {exc}") from exc

        status = data.get("status")
        if status == "ZERO_RESULTS":
            return []
        if status != "OK":
            raise GeocodingError(f"places search status {status}: {data.get('error_message', '')}")

        return [
            Place(
                name=r.get("name", ""),
                types=tuple(r.get("types") or ()),
                vicinity=r.get("vicinity", ""),
            )
            for r in data.get("results") or []
        ]
