"""Post-related Pydantic schemas."""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

from common_stage.models.post import DEFAULT_PREFERENCE
from common_stage.services.geo import map_url


def _both_or_neither(latitude: float | None, longitude: float | None) -> None:
    if (latitude is None) != (longitude is None):
        raise ValueError("latitude and longitude must be given together")


class PostCreate(BaseModel):
    """Schema for creating a new post."""

    title: str = Field(..., min_length=1, max_length=200, description="What the activity is")
    location: str = Field(..., min_length=1, max_length=300, description="Where it happens")
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)
    event_date: date | None = Field(None, description="Specific day, if the timing is fixed")
    time_details: str | None = Field(
        None,
        max_length=200,
        description="Free-text timing, e.g. '2pm' or 'weekday evenings'",
    )
    expires_at: datetime | None = Field(None, description="Used when no specific day is set")
    notes: str | None = Field(None, max_length=2000)
    preference: str = Field(DEFAULT_PREFERENCE, max_length=100)

    @field_validator("title", "location")
    @classmethod
    def _strip_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @model_validator(mode="after")
    def _check_coordinates(self) -> "PostCreate":
        _both_or_neither(self.latitude, self.longitude)
        return self


class PostUpdate(BaseModel):
    """Schema for an owner's edit; unset fields are left alone."""

    title: str | None = Field(None, min_length=1, max_length=200)
    location: str | None = Field(None, min_length=1, max_length=300)
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)
    time: str | None = Field(None, min_length=1, max_length=300)
    notes: str | None = Field(None, max_length=2000)
    preference: str | None = Field(None, max_length=100)

    @model_validator(mode="after")
    def _check_coordinates(self) -> "PostUpdate":
        _both_or_neither(self.latitude, self.longitude)
        return self


class PostResponse(BaseModel):
    """Schema for post information returned by the API."""

    id: int
    user_id: str
    title: str
    location: str
    latitude: float | None
    longitude: float | None
    time: str
    notes: str | None
    name: str
    preference: str
    people_interested: int
    status: str
    created_at: datetime
    expires_at: datetime | None
    distance_km: float | None = None
    distance_label: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def map_url(self) -> str:
        return map_url(self.latitude, self.longitude, self.location)

    model_config = ConfigDict(from_attributes=True)
