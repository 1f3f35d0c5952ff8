"""Tests for the HTTP geocoding adapters."""

from __future__ import annotations

import httpx
import pytest

from fleettrack.geocoding.base import GeocodingError
from fleettrack.geocoding.nominatim import NominatimGeocoder, format_address
from fleettrack.geocoding.places import GooglePlacesFinder


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_format_address_street_level():
    data = {"address": {"house_number": "118", "road": "West Johnson Avenue",
                        "city": "Springdale", "state": "Arkansas", "postcode": "72764"}}
    assert format_address(data) == "118, West Johnson Avenue, Springdale, Arkansas"


def test_format_address_falls_back_to_display_name():
    data = {"address": {}, "display_name": "Springdale, Washington County, Arkansas, United States"}
    assert format_address(data) == "Springdale, Washington County, Arkansas"
    assert format_address({}) is None


@pytest.mark.asyncio
async def test_nominatim_reverse():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        seen["agent"] = request.headers["user-agent"]
        return httpx.Response(200, json={"address": {"road": "Elm Street", "town": "Springdale"}})

    async with mock_client(handler) as client:
        geocoder = NominatimGeocoder(client, "https://geo.test/", user_agent="fleettrack-test")
        label = await geocoder.reverse(36.195, -94.15)

    assert label == "Elm Street, Springdale"
    assert seen["path"] == "/reverse"
    assert seen["params"]["lat"] == "36.195"
    assert seen["params"]["zoom"] == "18"
    assert seen["agent"] == "fleettrack-test"


@pytest.mark.asyncio
async def test_nominatim_reverse_no_result():
    async with mock_client(lambda r: httpx.Response(200, json={"error": "Unable to geocode"})) as client:
        assert await NominatimGeocoder(client).reverse(0.0, 0.0) is None


@pytest.mark.asyncio
async def test_nominatim_http_error_is_wrapped():
    async with mock_client(lambda r: httpx.Response(503)) as client:
        with pytest.raises(GeocodingError):
            await NominatimGeocoder(client).reverse(36.0, -94.0)


@pytest.mark.asyncio
async def test_nominatim_forward():
    def handler(request):
        assert request.url.path == "/search"
        assert request.url.params["q"] == "901 Jones Road, Springdale, AR"
        return httpx.Response(200, json=[{"lat": "36.178393", "lon": "-94.2095189"}])

    async with mock_client(handler) as client:
        coords = await NominatimGeocoder(client).forward("901 Jones Road, Springdale, AR")
    assert coords == (36.178393, -94.2095189)


@pytest.mark.asyncio
async def test_nominatim_forward_not_found():
    async with mock_client(lambda r: httpx.Response(200, json=[])) as client:
        assert await NominatimGeocoder(client).forward("nowhere") is None


@pytest.mark.asyncio
async def test_places_nearby():
    def handler(request):
        assert request.url.params["location"] == "36.195,-94.15"
        assert request.url.params["radius"] == "45"
        assert request.url.params["key"] == "k"
        return httpx.Response(200, json={"status": "OK", "results": [
            {"name": "Walmart Supercenter", "types": ["department_store", "store"], "vicinity": "Rogers"},
            {"name": "Springdale", "types": ["locality", "political"]},
        ]})

    async with mock_client(handler) as client:
        places = await GooglePlacesFinder(client, "k").nearby(36.195, -94.15, 45)

    assert [p.name for p in places] == ["Walmart Supercenter", "Springdale"]
    assert places[0].types == ("department_store", "store")


@pytest.mark.asyncio
async def test_places_zero_results():
    async with mock_client(lambda r: httpx.Response(200, json={"status": "ZERO_RESULTS"})) as client:
        assert await GooglePlacesFinder(client, "k").nearby(36.0, -94.0, 45) == []


@pytest.mark.asyncio
async def test_places_denied_is_an_error():
    body = {"status": "REQUEST_DENIED", "error_message": "bad key"}
    async with mock_client(lambda r: httpx.Response(200, json=body)) as client:
        with pytest.raises(GeocodingError, match="REQUEST_DENIED"):
            await GooglePlacesFinder(client, "k").nearby(36.0, -94.0, 45)
