"""CRUD-style helpers for managing the caller's own profile."""
from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from common_stage.core.errors import InvalidTransitionError, StorageError, ValidationError
from common_stage.core.settings import settings
from common_stage.models import Message, Post, Profile, Report, Thread
from common_stage.schemas.profile import ProfileCreate, ProfileResponse, ProfileUpdate
from common_stage.services.profile_facts import (
    age_from_birthdate,
    avatar_path_from_url,
    display_name,
    initials,
    is_profile_complete,
)
from common_stage.services.storage import AvatarStorage, avatar_object_path

__all__ = [
    "get_profile",
    "create_profile",
    "update_profile",
    "replace_avatar",
    "delete_account",
    "to_profile_response",
]

logger = logging.getLogger(__name__)


def get_profile(db: Session, user_id: str) -> Profile | None:
    """Return a single profile by user id."""
    return db.query(Profile).filter(Profile.id == user_id).first()


def create_profile(db: Session, user_id: str, data: ProfileCreate) -> Profile:
    """Create the profile row for a freshly signed-up user."""
    if get_profile(db, user_id) is not None:
        raise InvalidTransitionError("Profile already exists")

    profile = Profile(
        id=user_id,
        first_name=data.first_name,
        email=data.email,
        date_of_birth=data.date_of_birth,
    )
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def update_profile(db: Session, profile: Profile, update_data: ProfileUpdate) -> Profile:
    """Apply partial updates to the caller's profile."""
    update_dict = update_data.model_dump(exclude_unset=True)
    if "first_name" in update_dict and update_dict["first_name"] is None:
        raise ValidationError("First name is required")
    if "email_notifications" in update_dict and update_dict["email_notifications"] is None:
        update_dict.pop("email_notifications")

    for key, value in update_dict.items():
        setattr(profile, key, value)

    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


async def replace_avatar(
    db: Session,
    profile: Profile,
    storage: AvatarStorage,
    content: bytes,
    content_type: str,
    filename: str | None = None,
) -> Profile:
    """Upload a new avatar and point the profile at it.

    The previous avatar is removed afterwards on a best-effort basis when it
    lived at a different path.

    Raises:
        ValidationError: If the file is not an image or is too large
        StorageError: If the upload fails
    """
    if not content_type.startswith("image/"):
        raise ValidationError("Please choose an image file")
    if len(content) > settings.avatar_max_bytes:
        raise ValidationError("Image must be less than 5MB")
    if not content:
        raise ValidationError("Please choose an image file")

    path = avatar_object_path(profile.id, filename, content_type)
    public_url = await storage.upload(path, content, content_type)

    old_path = avatar_path_from_url(profile.avatar_url)
    profile.avatar_url = public_url
    db.add(profile)
    db.commit()
    db.refresh(profile)

    if old_path and old_path != path:
        try:
            await storage.delete(old_path)
        except StorageError as exc:
            logger.warning("Could not remove old avatar %s: %s", old_path, exc)
    return profile


async def delete_account(db: Session, profile: Profile, storage: AvatarStorage | None = None) -> None:
    """Remove the user's posts with their conversations and reports, the profile and the avatar."""
    user_id = profile.id
    avatar_path = avatar_path_from_url(profile.avatar_url)

    post_ids = select(Post.id).where(Post.user_id == user_id)
    thread_ids = select(Thread.id).where(Thread.post_id.in_(post_ids))
    # Bulk deletes skip ORM cascades and SQLite leaves foreign keys unenforced.
    db.query(Report).filter(
        or_(Report.post_id.in_(post_ids), Report.thread_id.in_(thread_ids))
    ).delete(synchronize_session=False)
    db.query(Message).filter(Message.thread_id.in_(thread_ids)).delete(synchronize_session=False)
    db.query(Thread).filter(Thread.post_id.in_(post_ids)).delete(synchronize_session=False)
    db.query(Post).filter(Post.user_id == user_id).delete(synchronize_session=False)
    db.delete(profile)
    db.commit()
    logger.info("Deleted account %s", user_id)

    if avatar_path and storage is not None and storage.enabled:
        try:
            await storage.delete(avatar_path)
        except StorageError as exc:
            logger.warning("Could not remove avatar of deleted account %s: %s", user_id, exc)


def to_profile_response(profile: Profile, today: date | None = None) -> ProfileResponse:
    """Convert a Profile ORM instance to an API schema with derived fields."""
    response = ProfileResponse.model_validate(profile)
    return response.model_copy(
        update={
            "age": age_from_birthdate(profile.date_of_birth, today),
            "display_name": display_name(profile.first_name, profile.date_of_birth, today),
            "initials": initials(profile.first_name),
            "is_complete": is_profile_complete(profile.avatar_url, profile.date_of_birth),
        }
    )
