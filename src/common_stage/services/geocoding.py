"""Forward geocoding for the location picker.

Lookups are best-effort: any failure yields an empty suggestion list so the
user can keep typing.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from common_stage.core.settings import settings

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 3


def short_place_name(display_name: str) -> str:
    """Return the first two comma-separated parts of a geocoder display name."""
    return ",".join(display_name.split(",")[:2])


@dataclass(frozen=True)
class PlaceSuggestion:
    display_name: str
    short_name: str
    latitude: float
    longitude: float


class GeocodingClient:
    """Thin client for a Nominatim-style ``/search`` endpoint."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        limit: int | None = None,
        country_codes: str | None = None,
        user_agent: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.base_url = base_url or settings.geocoder_base_url
        self.limit = limit or settings.geocoder_result_limit
        self.country_codes = country_codes if country_codes is not None else settings.geocoder_country_codes
        self.user_agent = user_agent or settings.geocoder_user_agent
        self.timeout_seconds = timeout_seconds or settings.http_timeout_seconds
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=self.base_url,
                    timeout=httpx.Timeout(self.timeout_seconds),
                    headers={"User-Agent": self.user_agent},
                )
        return self._client

    async def search(self, query: str) -> list[PlaceSuggestion]:
        """Return up to ``limit`` suggestions for ``query``; ``[]`` on any failure."""
        query = query.strip()
        if len(query) < MIN_QUERY_LENGTH:
            return []

        params: dict[str, Any] = {"format": "json", "q": query, "limit": self.limit}
        if self.country_codes:
            params["countrycodes"] = self.country_codes

        client = await self._ensure_client()
        try:
            response = await client.get("/search", params=params)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Geocoding lookup for %r failed: %s", query, exc)
            return []

        suggestions: list[PlaceSuggestion] = []
        for item in payload if isinstance(payload, list) else []:
            try:
                display_name = str(item["display_name"])
                suggestions.append(
                    PlaceSuggestion(
                        display_name=display_name,
                        short_name=short_place_name(display_name),
                        latitude=float(item["lat"]),
                        longitude=float(item["lon"]),
                    )
                )
            except (KeyError, TypeError, ValueError):
                logger.debug("Skipping malformed geocoder result: %r", item)
        return suggestions

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""
        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None


class _GeocodingClientSingleton:
    _instance: GeocodingClient | None = None

    @classmethod
    def get_instance(cls) -> GeocodingClient:
        if cls._instance is None:
            cls._instance = GeocodingClient()
        return cls._instance


def get_geocoding_client() -> GeocodingClient:
    """Return the process-wide geocoding client."""
    return _GeocodingClientSingleton.get_instance()
