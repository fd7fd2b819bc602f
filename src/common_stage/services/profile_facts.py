"""Small derived facts about profiles: age, display name, initials, avatar URL."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime

AVATAR_PUBLIC_PREFIX = "/storage/v1/object/public/avatars/"
AVATAR_PATH_MARKER = "/avatars/"


def age_from_birthdate(dob: date | datetime | None, today: date | None = None) -> int | None:
    """Return whole years since ``dob``, or None when no birthdate is known.

    One year is subtracted when this year's birthday has not happened yet.
    """
    if dob is None:
        return None
    if isinstance(dob, datetime):
        dob = dob.date()
    today = today or date.today()

    age = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        age -= 1
    return age


def display_name(name: str, dob: date | datetime | None, today: date | None = None) -> str:
    """Return ``"Name, 32"`` when the age is known, else just the name."""
    age = age_from_birthdate(dob, today)
    if age is not None:
        return f"{name}, {age}"
    return name


def initials(name: str) -> str:
    """Return up to two uppercase initials for an avatar placeholder."""
    return "".join(part[0] for part in name.split()).upper()[:2]


def resolve_avatar_url(avatar: str | None, base_storage_url: str) -> str | None:
    """Return a public URL for a stored avatar path.

    Values that are already absolute URLs are passed through untouched.
    """
    if not avatar:
        return None
    if avatar.startswith("http"):
        return avatar
    return f"{base_storage_url.rstrip('/')}{AVATAR_PUBLIC_PREFIX}{avatar}"


def avatar_path_from_url(avatar_url: str | None) -> str | None:
    """Return the storage path embedded in a public avatar URL."""
    if not avatar_url or AVATAR_PATH_MARKER not in avatar_url:
        return None
    path = avatar_url.split(AVATAR_PATH_MARKER, 1)[1]
    return path or None


def is_profile_complete(avatar_url: str | None, date_of_birth: date | None) -> bool:
    """A profile counts as addressed once a photo or a birthdate has been set."""
    return bool(avatar_url or date_of_birth)


def photos_revealed(participant_ids: Iterable[str], sender_ids: Iterable[str]) -> bool:
    """Return True once every participant has sent at least one message."""
    participants = set(participant_ids)
    return bool(participants) and participants.issubset(set(sender_ids))
