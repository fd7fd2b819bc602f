"""Distance helpers used to rank posts around a user's location."""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import Protocol, TypeVar
from urllib.parse import quote

EARTH_RADIUS_KM = 6371.0
KM_TO_MILES = 0.621371
NEARBY_MILES = 0.1
ONE_DECIMAL_BELOW_MILES = 10

MAPS_SEARCH_URL = "https://www.google.com/maps/search/?api=1&query="


class Located(Protocol):
    """Anything with optional latitude/longitude attributes."""

    latitude: float | None
    longitude: float | None


LocatedT = TypeVar("LocatedT", bound=Located)


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Return the great-circle distance between two points in kilometres.

    Uses the Haversine formula with a mean Earth radius of 6371 km. Inputs are
    in degrees. The result is symmetric and zero for identical points.
    """
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def format_distance(km: float) -> str:
    """Format a distance for display in miles.

    Returns ``"nearby"`` under 0.1 miles, one decimal place under 10 miles and
    a rounded whole number beyond that.
    """
    miles = km * KM_TO_MILES
    if miles < NEARBY_MILES:
        return "nearby"
    if miles < ONE_DECIMAL_BELOW_MILES:
        return f"{miles:.1f} miles"
    return f"{round(miles)} miles"


def _has_coordinates(item: Located) -> bool:
    return item.latitude is not None and item.longitude is not None


def distance_to_post(post: Located, user_lat: float, user_lon: float) -> float | None:
    """Return the distance from the user to ``post`` or None if it has no location."""
    if not _has_coordinates(post):
        return None
    return distance_km(user_lat, user_lon, post.latitude, post.longitude)  # type: ignore[arg-type]


def rank_by_distance(
    posts: Sequence[LocatedT],
    user_lat: float,
    user_lon: float,
) -> list[LocatedT]:
    """Return ``posts`` sorted nearest first.

    The sort is stable. Posts missing either coordinate are placed after every
    located post and keep their input order relative to each other.
    """

    def sort_key(post: LocatedT) -> tuple[int, float]:
        distance = distance_to_post(post, user_lat, user_lon)
        if distance is None:
            return (1, 0.0)
        return (0, distance)

    return sorted(posts, key=sort_key)


def map_url(latitude: float | None, longitude: float | None, location: str) -> str:
    """Return a maps search link, preferring coordinates over the free-text location."""
    if latitude is not None and longitude is not None:
        return f"{MAPS_SEARCH_URL}{latitude},{longitude}"
    return f"{MAPS_SEARCH_URL}{quote(location, safe='')}"
