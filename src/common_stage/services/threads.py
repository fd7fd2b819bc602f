"""Conversation threads between a post's owner and interested users."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from common_stage.core.errors import (
    AuthorizationError,
    EmptyMessage,
    NotFoundError,
    RemoteOperationFailed,
    ThreadClosedError,
    ThreadCreationFailed,
    ValidationError,
)
from common_stage.core.settings import settings
from common_stage.db.time import as_utc, utcnow
from common_stage.models import Message, Post, Thread
from common_stage.models.post import POST_STATUS_APPROVED
from common_stage.services.realtime import (
    EVENT_INSERT,
    TABLE_MESSAGE,
    TABLE_THREAD,
    ChangeEvent,
    ChangeFeed,
    get_change_feed,
)

logger = logging.getLogger(__name__)


def closed_by_dates(
    closed_at: datetime | None,
    expires_at: datetime | None,
    now: datetime | None = None,
) -> bool:
    """Return True for an explicit close or once the grace window after expiry ends."""
    if closed_at is not None:
        return True
    if expires_at is None:
        return False
    now = now or utcnow()
    grace = timedelta(hours=settings.thread_grace_hours)
    return now > as_utc(expires_at) + grace


def is_thread_closed(thread: Thread, post: Post | None, now: datetime | None = None) -> bool:
    """Return True once a conversation has closed.

    A thread closes when it carries an explicit ``closed_at`` or when its post
    expired more than the grace window ago. Closed threads stay readable.
    """
    return closed_by_dates(thread.closed_at, post.expires_at if post else None, now)


def sort_open_first(threads: Sequence[Thread], now: datetime | None = None) -> list[Thread]:
    """Stable partition: open threads keep their order ahead of closed ones."""
    now = now or utcnow()
    return sorted(threads, key=lambda thread: is_thread_closed(thread, thread.post, now))


def thread_row(thread: Thread) -> dict[str, Any]:
    """Return the change-feed payload for a thread insert."""
    return {
        "id": thread.id,
        "post_id": thread.post_id,
        "participant_ids": thread.participant_ids,
        "created_by": thread.created_by,
        "created_at": as_utc(thread.created_at),
        "closed_at": as_utc(thread.closed_at) if thread.closed_at else None,
    }


def message_row(message: Message) -> dict[str, Any]:
    """Return the change-feed payload for a message insert."""
    return {
        "id": message.id,
        "thread_id": message.thread_id,
        "sender_id": message.sender_id,
        "content": message.content,
        "created_at": as_utc(message.created_at),
    }


@dataclass
class InterestResult:
    """Outcome of a user clicking "interested" on a post."""

    thread: Thread
    created: bool
    message: Message | None = None


class ThreadStore:
    """Thread creation and message storage for one database session."""

    def __init__(self, db: Session, feed: ChangeFeed | None = None) -> None:
        self.db = db
        self.feed = feed or get_change_feed()

    def find_thread(self, post_id: int, respondent_user_id: str) -> Thread | None:
        """Return the respondent's thread about ``post_id`` if one exists."""
        return (
            self.db.query(Thread)
            .filter(
                Thread.post_id == post_id,
                Thread.respondent_user_id == respondent_user_id,
            )
            .first()
        )

    def find_or_create_thread(
        self,
        post_id: int,
        poster_user_id: str,
        respondent_user_id: str,
    ) -> tuple[Thread, bool]:
        """Return the single thread for ``(post, respondent)``, creating it if needed.

        The post's interest counter is bumped only when a row is actually
        inserted. A concurrent insert that loses against the unique constraint
        resolves to the winner's row.

        Returns:
            The thread and whether this call created it

        Raises:
            ThreadCreationFailed: If the thread could not be stored
        """
        existing = self.find_thread(post_id, respondent_user_id)
        if existing is not None:
            return existing, False

        thread = Thread(
            post_id=post_id,
            owner_user_id=poster_user_id,
            respondent_user_id=respondent_user_id,
            created_by=respondent_user_id,
        )
        try:
            self.db.add(thread)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self.find_thread(post_id, respondent_user_id)
            if existing is None:
                logger.error("Thread insert for post %s conflicted but no row found", post_id)
                raise ThreadCreationFailed() from None
            logger.info("Concurrent thread creation for post %s resolved to %s", post_id, existing.id)
            return existing, False
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Failed to create thread for post %s: %s", post_id, exc)
            raise ThreadCreationFailed() from exc

        self.db.refresh(thread)
        self._increment_interested(post_id)
        self._publish(TABLE_THREAD, thread_row(thread))
        return thread, True

    def _increment_interested(self, post_id: int) -> None:
        # Best effort: the thread is already committed, so a failure here only
        # leaves the counter one short.
        try:
            self.db.execute(
                update(Post)
                .where(Post.id == post_id)
                .values(people_interested=Post.people_interested + 1)
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning("Could not increment interest count for post %s: %s", post_id, exc)

    def express_interest(
        self,
        post_id: int,
        respondent_user_id: str,
        message: str | None = None,
    ) -> InterestResult:
        """Open (or reopen) the conversation about a post and send an optional note."""
        post = self.db.get(Post, post_id)
        if post is None or post.status != POST_STATUS_APPROVED:
            raise NotFoundError("Post not found")
        if post.user_id == respondent_user_id:
            raise ValidationError("You can't express interest in your own post")

        thread, created = self.find_or_create_thread(post.id, post.user_id, respondent_user_id)

        sent: Message | None = None
        if message and message.strip():
            sent = self.append_message(thread.id, respondent_user_id, message)
        return InterestResult(thread=thread, created=created, message=sent)

    def get_thread_for_participant(self, thread_id: int, user_id: str) -> Thread:
        """Return the thread if ``user_id`` takes part in it.

        Raises:
            NotFoundError: For unknown ids and for non-participants alike
        """
        thread = self.db.get(Thread, thread_id)
        if thread is None or not thread.has_participant(user_id):
            raise NotFoundError("Conversation not found")
        return thread

    def append_message(
        self,
        thread_id: int,
        sender_id: str,
        content: str,
        now: datetime | None = None,
    ) -> Message:
        """Store a message from one of the thread's participants.

        Raises:
            EmptyMessage: If the content is blank after trimming
            NotFoundError: If the thread does not exist
            AuthorizationError: If the sender is not a participant
            ThreadClosedError: If the conversation has closed
        """
        text = (content or "").strip()
        if not text:
            raise EmptyMessage()

        thread = self.db.get(Thread, thread_id)
        if thread is None:
            raise NotFoundError("Conversation not found")
        if not thread.has_participant(sender_id):
            raise AuthorizationError("You are not part of this conversation")
        if is_thread_closed(thread, thread.post, now):
            raise ThreadClosedError()

        message = Message(thread_id=thread.id, sender_id=sender_id, content=text)
        try:
            self.db.add(message)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Failed to store message in thread %s: %s", thread_id, exc)
            raise RemoteOperationFailed("Failed to send message. Please try again.") from exc

        self.db.refresh(message)
        self._publish(TABLE_MESSAGE, message_row(message))
        return message

    def list_messages(self, thread_id: int) -> list[Message]:
        """Return a thread's messages oldest first, ties in insertion order."""
        return (
            self.db.query(Message)
            .filter(Message.thread_id == thread_id)
            .order_by(Message.created_at.asc(), Message.id.asc())
            .all()
        )

    def list_threads_for_user(self, user_id: str, now: datetime | None = None) -> list[Thread]:
        """Return the user's threads newest first, open ones ahead of closed ones."""
        threads = (
            self.db.query(Thread)
            .filter(
                or_(
                    Thread.owner_user_id == user_id,
                    Thread.respondent_user_id == user_id,
                )
            )
            .order_by(Thread.created_at.desc(), Thread.id.desc())
            .all()
        )
        return sort_open_first(threads, now)

    def _publish(self, table: str, row: dict[str, Any]) -> None:
        self.feed.publish(ChangeEvent(event_type=EVENT_INSERT, table=table, new_row=row))
