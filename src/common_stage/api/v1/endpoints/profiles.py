"""Endpoints for the caller's own profile and settings."""

from __future__ import annotations

from fastapi import APIRouter, Query, Request, Response, status

from common_stage.api.v1.dependencies import (
    AvatarStorageDep,
    CurrentUserDep,
    CurrentUserIdDep,
    SessionDep,
)
from common_stage.core.settings import settings
from common_stage.schemas.profile import ProfileCreate, ProfileResponse, ProfileUpdate
from common_stage.services import profile_service

router = APIRouter(prefix="/profiles", tags=["profiles"])


@router.post("/me", response_model=ProfileResponse, status_code=status.HTTP_201_CREATED)
async def create_my_profile(
    payload: ProfileCreate,
    user_id: CurrentUserIdDep,
    db: SessionDep,
) -> ProfileResponse:
    """Create the profile for a newly signed-up user."""
    profile = profile_service.create_profile(db, user_id, payload)
    return profile_service.to_profile_response(profile)


@router.get("/me", response_model=ProfileResponse)
async def get_my_profile(current_user: CurrentUserDep) -> ProfileResponse:
    return profile_service.to_profile_response(current_user)


@router.patch("/me", response_model=ProfileResponse)
async def update_my_profile(
    payload: ProfileUpdate,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> ProfileResponse:
    """Update name, birthdate or the email-notification toggle."""
    profile = profile_service.update_profile(db, current_user, payload)
    return profile_service.to_profile_response(profile)


@router.put("/me/avatar", response_model=ProfileResponse)
async def upload_avatar(
    request: Request,
    current_user: CurrentUserDep,
    db: SessionDep,
    storage: AvatarStorageDep,
    filename: str | None = Query(None, max_length=255),
) -> ProfileResponse:
    """Replace the caller's photo with the raw image in the request body."""
    content_type = request.headers.get("content-type", "")
    content = await request.body()
    profile = await profile_service.replace_avatar(
        db,
        current_user,
        storage,
        content,
        content_type,
        filename,
    )
    return profile_service.to_profile_response(profile)


@router.delete("/me", status_code=status.HTTP_204_NO_CONTENT)
async def delete_my_account(
    current_user: CurrentUserDep,
    db: SessionDep,
    storage: AvatarStorageDep,
) -> Response:
    """Delete the caller's posts, profile and photo."""
    await profile_service.delete_account(db, current_user, storage)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/limits")
async def get_limits() -> dict[str, int]:
    """Expose upload limits so clients can validate before sending."""
    return {"avatar_max_bytes": settings.avatar_max_bytes}
