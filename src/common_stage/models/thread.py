"""Models for conversation threads and their messages."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from common_stage.db.session import Base
from common_stage.db.time import utcnow

from .post import Post


class Thread(Base):
    """Two-participant conversation scoped to a single post.

    The unique constraint on ``(post_id, respondent_user_id)`` is what keeps
    one respondent from opening two conversations about the same post.
    """

    __tablename__ = "thread"
    __table_args__ = (
        UniqueConstraint("post_id", "respondent_user_id", name="uq_thread_post_respondent"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    post_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("post.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    owner_user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    respondent_user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    # Explicit override; otherwise closing is derived from the post's expiry.
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    post: Mapped[Post] = relationship("Post", lazy="joined")

    @property
    def participant_ids(self) -> list[str]:
        """Return both participants, post owner first."""
        return [self.owner_user_id, self.respondent_user_id]

    def has_participant(self, user_id: str) -> bool:
        """Return True if ``user_id`` is one of the two participants."""
        return user_id in (self.owner_user_id, self.respondent_user_id)


class Message(Base):
    """Immutable utterance within a thread."""

    __tablename__ = "message"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    thread_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("thread.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sender_id: Mapped[str] = mapped_column(String(64), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
