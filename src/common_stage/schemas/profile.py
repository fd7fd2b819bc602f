"""Profile-related Pydantic schemas."""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _strip_first_name(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if not value:
        raise ValueError("First name is required")
    return value


class ProfileCreate(BaseModel):
    """Schema for creating the caller's own profile after sign-up."""

    first_name: str = Field(..., max_length=100)
    email: str | None = Field(None, max_length=320)
    date_of_birth: date | None = None

    @field_validator("first_name")
    @classmethod
    def _check_first_name(cls, value: str | None) -> str | None:
        return _strip_first_name(value)


class ProfileUpdate(BaseModel):
    """Schema for updating profile settings; unset fields are left alone."""

    first_name: str | None = Field(None, max_length=100)
    date_of_birth: date | None = None
    email_notifications: bool | None = None

    @field_validator("first_name")
    @classmethod
    def _check_first_name(cls, value: str | None) -> str | None:
        return _strip_first_name(value)


class ProfileResponse(BaseModel):
    """The caller's own profile."""

    id: str
    first_name: str
    email: str | None
    avatar_url: str | None
    date_of_birth: date | None
    is_admin: bool
    email_notifications: bool
    created_at: datetime
    age: int | None = None
    display_name: str | None = None
    initials: str | None = None
    is_complete: bool = False

    model_config = ConfigDict(from_attributes=True)
