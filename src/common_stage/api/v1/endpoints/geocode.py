"""Location search proxied to the geocoder."""

from __future__ import annotations

from fastapi import APIRouter, Query

from common_stage.api.v1.dependencies import CurrentUserDep, GeocodingClientDep
from common_stage.schemas.geocode import GeocodeResult

router = APIRouter(prefix="/geocode", tags=["geocode"])


@router.get("/search", response_model=list[GeocodeResult])
async def search_places(
    current_user: CurrentUserDep,
    geocoder: GeocodingClientDep,
    q: str = Query(..., max_length=200, description="Free-text place query"),
) -> list[GeocodeResult]:
    """Return up to five place suggestions; an empty list when the lookup fails."""
    suggestions = await geocoder.search(q)
    return [
        GeocodeResult(
            display_name=suggestion.display_name,
            short_name=suggestion.short_name,
            latitude=suggestion.latitude,
            longitude=suggestion.longitude,
        )
        for suggestion in suggestions
    ]
