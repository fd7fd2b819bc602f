"""Schemas for location search."""

from pydantic import BaseModel


class GeocodeResult(BaseModel):
    """One place suggestion for the location picker."""

    display_name: str
    short_name: str
    latitude: float
    longitude: float
