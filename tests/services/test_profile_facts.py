# mypy: ignore-errors
"""Tests for derived profile facts."""

from datetime import date, datetime

from common_stage.services.profile_facts import (
    age_from_birthdate,
    avatar_path_from_url,
    display_name,
    initials,
    is_profile_complete,
    photos_revealed,
    resolve_avatar_url,
)

TODAY = date(2024, 6, 15)


def test_age_after_birthday() -> None:
    """The birthday has already happened this year."""
    assert age_from_birthdate(date(1994, 6, 15), TODAY) == 30


def test_age_before_birthday() -> None:
    """One year less while this year's birthday is still ahead."""
    assert age_from_birthdate(date(1994, 6, 16), TODAY) == 29


def test_age_unknown() -> None:
    assert age_from_birthdate(None, TODAY) is None


def test_age_accepts_datetimes() -> None:
    assert age_from_birthdate(datetime(1994, 1, 1, 12, 0), TODAY) == 30


def test_display_name() -> None:
    """The age is appended only when it is known."""
    assert display_name("Alice", date(1994, 6, 15), TODAY) == "Alice, 30"
    assert display_name("Alice", None, TODAY) == "Alice"


def test_initials() -> None:
    assert initials("alice") == "A"
    assert initials("Mary Jane Watson") == "MJ"
    assert initials("") == ""


def test_resolve_avatar_url() -> None:
    """Stored paths get the public prefix, absolute URLs pass through."""
    base = "https://store.example.com/"
    assert resolve_avatar_url(None, base) is None
    assert resolve_avatar_url("", base) is None
    assert resolve_avatar_url("https://cdn.example.com/a.png", base) == "https://cdn.example.com/a.png"
    assert resolve_avatar_url("u1/avatar.png", base) == (
        "https://store.example.com/storage/v1/object/public/avatars/u1/avatar.png"
    )


def test_avatar_path_from_url() -> None:
    url = "https://store.example.com/storage/v1/object/public/avatars/u1/avatar.png"
    assert avatar_path_from_url(url) == "u1/avatar.png"
    assert avatar_path_from_url("https://elsewhere.example.com/pic.png") is None
    assert avatar_path_from_url(None) is None


def test_profile_complete_with_photo_or_birthdate() -> None:
    assert is_profile_complete("u1/avatar.png", None)
    assert is_profile_complete(None, date(1990, 1, 1))
    assert not is_profile_complete(None, None)


def test_photos_revealed_only_once_everyone_has_spoken() -> None:
    """Photos stay hidden until both participants have sent a message."""
    participants = ["alice", "ben"]
    assert not photos_revealed(participants, [])
    assert not photos_revealed(participants, ["ben", "ben"])
    assert photos_revealed(participants, ["ben", "alice"])


def test_photos_not_revealed_without_participants() -> None:
    assert not photos_revealed([], ["alice"])
