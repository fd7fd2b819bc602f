"""Service-level helpers for creating, editing and listing posts."""
from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, date, datetime, time, timedelta

from sqlalchemy.orm import Session

from common_stage.core.errors import InvalidTransitionError, NotFoundError, ValidationError
from common_stage.core.settings import settings
from common_stage.db.time import utcnow
from common_stage.models import Post, Profile, Report, Thread
from common_stage.models.post import (
    POST_OWNER_MUTABLE_STATUSES,
    POST_STATUS_APPROVED,
    POST_STATUS_CLOSED,
    POST_STATUS_DELETED,
    POST_STATUS_PENDING,
)
from common_stage.models.report import REPORT_REASON_OTHER
from common_stage.schemas.post import PostCreate, PostResponse, PostUpdate
from common_stage.schemas.report import ReportCreate
from common_stage.services.geo import distance_to_post, format_distance, rank_by_distance

__all__ = [
    "ANONYMOUS_NAME",
    "FLEXIBLE_TIMING",
    "format_post_time",
    "compute_expiry",
    "create_post",
    "update_post",
    "close_post",
    "delete_post",
    "get_visible_post",
    "list_public_posts",
    "list_my_posts",
    "ranked_post_responses",
    "create_report",
    "to_post_response",
]

logger = logging.getLogger(__name__)

ANONYMOUS_NAME = "Anonymous"
FLEXIBLE_TIMING = "Flexible timing"
OTHER_WITHOUT_DETAILS = "Other (no details provided)"


def format_post_time(event_date: date | None, details: str | None) -> str:
    """Build the post's display time, e.g. ``"Saturday 18 October, 2pm"``."""
    details = (details or "").strip()
    if event_date is not None:
        formatted = f"{event_date.strftime('%A')} {event_date.day} {event_date.strftime('%B')}"
        return f"{formatted}, {details}" if details else formatted
    return details or FLEXIBLE_TIMING


def compute_expiry(
    event_date: date | None,
    expires_at: datetime | None,
    now: datetime | None = None,
) -> datetime:
    """Return when a new post stops being relevant.

    A specific day expires at the start of the following day. Otherwise the
    supplied expiry is used, falling back to the configured default window.
    """
    if event_date is not None:
        return datetime.combine(event_date + timedelta(days=1), time.min, tzinfo=UTC)
    if expires_at is not None:
        if expires_at.tzinfo is None:
            return expires_at.replace(tzinfo=UTC)
        return expires_at
    now = now or utcnow()
    return now + timedelta(days=settings.post_default_expiry_days)


def create_post(db: Session, owner: Profile, draft: PostCreate) -> Post:
    """Persist a new post in the moderation queue."""
    post = Post(
        user_id=owner.id,
        title=draft.title,
        location=draft.location,
        latitude=draft.latitude,
        longitude=draft.longitude,
        time=format_post_time(draft.event_date, draft.time_details),
        notes=(draft.notes or "").strip() or None,
        name=(owner.first_name or "").strip() or ANONYMOUS_NAME,
        preference=draft.preference,
        status=POST_STATUS_PENDING,
        expires_at=compute_expiry(draft.event_date, draft.expires_at),
    )
    db.add(post)
    db.commit()
    db.refresh(post)
    logger.info("Post %s created by %s and queued for review", post.id, owner.id)
    return post


def _get_owned_post(db: Session, owner_id: str, post_id: int) -> Post:
    post = db.get(Post, post_id)
    if post is None or post.user_id != owner_id or post.status == POST_STATUS_DELETED:
        raise NotFoundError("Post not found")
    return post


def update_post(db: Session, owner_id: str, post_id: int, changes: PostUpdate) -> Post:
    """Apply an owner's edit to a pending or approved post.

    Moving the post to a new location needs the coordinates of the new place;
    keeping the same location leaves the stored coordinates in place.
    """
    post = _get_owned_post(db, owner_id, post_id)
    if post.status not in POST_OWNER_MUTABLE_STATUSES:
        raise InvalidTransitionError(f"A {post.status} post can no longer be edited")

    update_dict = changes.model_dump(exclude_unset=True)
    new_location = update_dict.get("location")
    if new_location is not None:
        new_location = new_location.strip()
        if not new_location:
            raise ValidationError("Location is required")
        update_dict["location"] = new_location
        if new_location != post.location and changes.latitude is None:
            raise ValidationError("Please select a location from the suggestions")

    # Coordinates only ever arrive as a pair picked from a suggestion.
    if changes.latitude is None or changes.longitude is None:
        update_dict.pop("latitude", None)
        update_dict.pop("longitude", None)
    if "notes" in update_dict:
        update_dict["notes"] = (update_dict["notes"] or "").strip() or None

    for key, value in update_dict.items():
        setattr(post, key, value)

    db.add(post)
    db.commit()
    db.refresh(post)
    return post


def _finish_post(db: Session, owner_id: str, post_id: int, new_status: str) -> Post:
    post = _get_owned_post(db, owner_id, post_id)
    if post.status not in POST_OWNER_MUTABLE_STATUSES:
        raise InvalidTransitionError(f"A {post.status} post cannot be {new_status}")

    post.status = new_status
    db.commit()
    db.refresh(post)
    logger.info("Owner %s marked post %s as %s", owner_id, post_id, new_status)
    return post


def close_post(db: Session, owner_id: str, post_id: int) -> Post:
    """Mark a post as no longer taking interest. Irreversible."""
    return _finish_post(db, owner_id, post_id, POST_STATUS_CLOSED)


def delete_post(db: Session, owner_id: str, post_id: int) -> Post:
    """Soft-delete a post. Irreversible."""
    return _finish_post(db, owner_id, post_id, POST_STATUS_DELETED)


def get_visible_post(db: Session, post_id: int, viewer_id: str | None = None) -> Post:
    """Return an approved post, or the viewer's own pending post."""
    post = db.get(Post, post_id)
    if post is None:
        raise NotFoundError("Post not found")
    if post.status == POST_STATUS_APPROVED:
        return post
    if post.status == POST_STATUS_PENDING and viewer_id is not None and post.user_id == viewer_id:
        return post
    raise NotFoundError("Post not found")


def list_public_posts(db: Session) -> list[Post]:
    """Return the public feed: approved posts, newest first."""
    return (
        db.query(Post)
        .filter(Post.status == POST_STATUS_APPROVED)
        .order_by(Post.created_at.desc(), Post.id.desc())
        .all()
    )


def list_my_posts(db: Session, owner_id: str) -> list[Post]:
    """Return the owner's live posts (pending and approved), newest first."""
    return (
        db.query(Post)
        .filter(Post.user_id == owner_id, Post.status.in_(POST_OWNER_MUTABLE_STATUSES))
        .order_by(Post.created_at.desc(), Post.id.desc())
        .all()
    )


def to_post_response(
    post: Post,
    user_lat: float | None = None,
    user_lon: float | None = None,
) -> PostResponse:
    """Convert a Post ORM instance to an API schema, with distance when known."""
    response = PostResponse.model_validate(post)
    if user_lat is None or user_lon is None:
        return response
    distance = distance_to_post(post, user_lat, user_lon)
    if distance is None:
        return response
    return response.model_copy(
        update={"distance_km": distance, "distance_label": format_distance(distance)}
    )


def ranked_post_responses(
    posts: Sequence[Post],
    user_lat: float | None,
    user_lon: float | None,
) -> list[PostResponse]:
    """Serialise a feed, nearest first when the caller shared a location."""
    if user_lat is None or user_lon is None:
        return [to_post_response(post) for post in posts]
    ranked = rank_by_distance(posts, user_lat, user_lon)
    return [to_post_response(post, user_lat, user_lon) for post in ranked]


def create_report(db: Session, reporter_id: str, draft: ReportCreate) -> Report:
    """Store a report against a post or a thread the reporter can see."""
    if draft.post_id is not None:
        if db.get(Post, draft.post_id) is None:
            raise NotFoundError("Post not found")
    elif draft.thread_id is not None:
        thread = db.get(Thread, draft.thread_id)
        if thread is None or not thread.has_participant(reporter_id):
            raise NotFoundError("Conversation not found")

    reason = draft.reason
    if reason == REPORT_REASON_OTHER:
        reason = (draft.details or "").strip() or OTHER_WITHOUT_DETAILS

    report = Report(
        post_id=draft.post_id,
        thread_id=draft.thread_id,
        reported_by=reporter_id,
        reason=reason,
    )
    db.add(report)
    db.commit()
    db.refresh(report)
    logger.info("Report %s filed by %s", report.id, reporter_id)
    return report
