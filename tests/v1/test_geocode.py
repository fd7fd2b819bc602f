# mypy: ignore-errors
"""Tests for the place search endpoint."""

from unittest.mock import AsyncMock

from common_stage.services.geocoding import GeocodingClient, PlaceSuggestion, get_geocoding_client


def test_search_places(app, client, poster_headers) -> None:
    geocoder = AsyncMock(spec=GeocodingClient)
    geocoder.search.return_value = [
        PlaceSuggestion(
            display_name="Clapham Common, London, England",
            short_name="Clapham Common, London",
            latitude=51.4618,
            longitude=-0.1384,
        )
    ]
    app.dependency_overrides[get_geocoding_client] = lambda: geocoder
    try:
        response = client.get("/api/v1/geocode/search", params={"q": "clapham"}, headers=poster_headers)
    finally:
        app.dependency_overrides.pop(get_geocoding_client, None)

    assert response.status_code == 200
    assert response.json() == [
        {
            "display_name": "Clapham Common, London, England",
            "short_name": "Clapham Common, London",
            "latitude": 51.4618,
            "longitude": -0.1384,
        }
    ]
    geocoder.search.assert_awaited_once_with("clapham")


def test_search_requires_auth(client) -> None:
    response = client.get("/api/v1/geocode/search", params={"q": "clapham"})

    assert response.status_code in {401, 403}
