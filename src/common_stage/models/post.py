"""SQLAlchemy models for activity posts."""

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from common_stage.db.session import Base
from common_stage.db.time import utcnow

# Post lifecycle:
# pending -> approved | rejected (moderation), approved -> hidden (moderation),
# pending | approved -> closed | deleted (owner, terminal).
POST_STATUS_PENDING = "pending"
POST_STATUS_APPROVED = "approved"
POST_STATUS_REJECTED = "rejected"
POST_STATUS_HIDDEN = "hidden"
POST_STATUS_CLOSED = "closed"
POST_STATUS_DELETED = "deleted"

POST_STATUSES = (
    POST_STATUS_PENDING,
    POST_STATUS_APPROVED,
    POST_STATUS_REJECTED,
    POST_STATUS_HIDDEN,
    POST_STATUS_CLOSED,
    POST_STATUS_DELETED,
)

# Statuses an owner may still edit, close or delete.
POST_OWNER_MUTABLE_STATUSES = (POST_STATUS_PENDING, POST_STATUS_APPROVED)

DEFAULT_PREFERENCE = "anyone"


class Post(Base):
    """An activity offer: what, where and when, owned by one user."""

    __tablename__ = "post"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("profile.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title: Mapped[str] = mapped_column(Text, nullable=False)
    location: Mapped[str] = mapped_column(Text, nullable=False)
    # Both set or both null.
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    time: Mapped[str] = mapped_column(Text, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    preference: Mapped[str] = mapped_column(Text, nullable=False, default=DEFAULT_PREFERENCE)

    people_interested: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=POST_STATUS_PENDING,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def has_coordinates(self) -> bool:
        """Return True when both coordinates are present."""
        return self.latitude is not None and self.longitude is not None
