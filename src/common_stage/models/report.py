"""Models tracking abuse reports and their review state."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from common_stage.db.session import Base
from common_stage.db.time import utcnow

REPORT_STATUS_PENDING = "pending"
REPORT_STATUS_REVIEWED = "reviewed"
REPORT_STATUS_DISMISSED = "dismissed"

REPORT_STATUSES = (REPORT_STATUS_PENDING, REPORT_STATUS_REVIEWED, REPORT_STATUS_DISMISSED)

REPORT_REASON_OTHER = "Other"
REPORT_REASONS = (
    "Spam or misleading",
    "Inappropriate content",
    "Harassment or abuse",
    "Safety concern",
    REPORT_REASON_OTHER,
)


class Report(Base):
    """A flag raised against either a post or a thread, never both."""

    __tablename__ = "report"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    post_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("post.id", ondelete="CASCADE"),
        nullable=True,
    )
    thread_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("thread.id", ondelete="CASCADE"),
        nullable=True,
    )
    reported_by: Mapped[str] = mapped_column(String(64), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=REPORT_STATUS_PENDING,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
