"""Admin moderation of posts and reports."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import func
from sqlalchemy.orm import Session

from common_stage.core.errors import (
    AuthorizationError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from common_stage.models import Post, Profile, Report
from common_stage.models.post import (
    POST_STATUS_APPROVED,
    POST_STATUS_HIDDEN,
    POST_STATUS_PENDING,
    POST_STATUS_REJECTED,
    POST_STATUSES,
)
from common_stage.models.report import (
    REPORT_STATUS_DISMISSED,
    REPORT_STATUS_PENDING,
    REPORT_STATUS_REVIEWED,
    REPORT_STATUSES,
)
from common_stage.services.notifications import (
    OUTCOME_APPROVED,
    OUTCOME_REJECTED,
    OUTCOME_REMOVED,
    EmailNotifier,
    get_email_notifier,
    notify_post_moderated,
)

logger = logging.getLogger(__name__)

REPORT_FILTER_ALL = "all"

# (from_status, to_status) pairs an admin may apply to a post.
POST_TRANSITIONS = {
    (POST_STATUS_PENDING, POST_STATUS_APPROVED),
    (POST_STATUS_PENDING, POST_STATUS_REJECTED),
    (POST_STATUS_APPROVED, POST_STATUS_HIDDEN),
}


@dataclass
class ModerationCounters:
    """Badge counts for the admin screens."""

    pending_posts: int = 0
    pending_reports: int = 0

    @classmethod
    def load(cls, db: Session) -> ModerationCounters:
        counters = cls()
        counters.refresh(db)
        return counters

    def refresh(self, db: Session) -> None:
        self.pending_posts = (
            db.query(func.count(Post.id)).filter(Post.status == POST_STATUS_PENDING).scalar() or 0
        )
        self.pending_reports = (
            db.query(func.count(Report.id))
            .filter(Report.status == REPORT_STATUS_PENDING)
            .scalar()
            or 0
        )

    def post_resolved(self) -> None:
        self.pending_posts = max(0, self.pending_posts - 1)

    def report_resolved(self) -> None:
        self.pending_reports = max(0, self.pending_reports - 1)


class _CountersRegistry:
    """One counters object per admin, like a badge held open in a browser tab."""

    _counters: dict[str, ModerationCounters] = {}

    @classmethod
    def get(cls, admin_id: str, db: Session) -> ModerationCounters:
        counters = cls._counters.get(admin_id)
        if counters is None:
            counters = ModerationCounters.load(db)
            cls._counters[admin_id] = counters
        return counters

    @classmethod
    def clear(cls) -> None:
        cls._counters.clear()


def get_moderation_counters(admin_id: str, db: Session) -> ModerationCounters:
    """Return the counters tracked for ``admin_id``, loading them on first use."""
    return _CountersRegistry.get(admin_id, db)


def reset_moderation_counters() -> None:
    """Forget every tracked counters object."""
    _CountersRegistry.clear()


class ModerationWorkflow:
    """State transitions an admin applies to posts and reports.

    Admin rights are re-read from the caller's profile row on every call, so a
    revoked admin cannot keep acting on a stale check made earlier.
    """

    def __init__(
        self,
        db: Session,
        notifier: EmailNotifier | None = None,
        counters: ModerationCounters | None = None,
    ) -> None:
        self.db = db
        self.notifier = notifier or get_email_notifier()
        self.counters = counters if counters is not None else ModerationCounters()

    def require_admin(self, user_id: str) -> None:
        """Raise ``AuthorizationError`` unless the stored profile is an admin."""
        is_admin = self.db.query(Profile.is_admin).filter(Profile.id == user_id).scalar()
        if not is_admin:
            logger.warning("Non-admin %s attempted a moderation action", user_id)
            raise AuthorizationError("Admin access required")

    def _get_post(self, post_id: int) -> Post:
        post = self.db.get(Post, post_id)
        if post is None:
            raise NotFoundError("Post not found")
        return post

    def _get_report(self, report_id: int) -> Report:
        report = self.db.get(Report, report_id)
        if report is None:
            raise NotFoundError("Report not found")
        return report

    def _transition_post(self, admin_id: str, post_id: int, new_status: str) -> Post:
        self.require_admin(admin_id)
        post = self._get_post(post_id)
        if (post.status, new_status) not in POST_TRANSITIONS:
            raise InvalidTransitionError(f"Cannot move a {post.status} post to {new_status}")

        previous = post.status
        post.status = new_status
        self.db.commit()
        self.db.refresh(post)

        if previous == POST_STATUS_PENDING:
            self.counters.post_resolved()
        logger.info("Admin %s moved post %s from %s to %s", admin_id, post_id, previous, new_status)
        return post

    async def _notify_owner(self, post: Post, outcome: str) -> None:
        """Send the owner notice without letting a failure undo a committed transition."""
        try:
            await notify_post_moderated(self.notifier, self.db, post, outcome)
        except Exception:  # noqa: BLE001 - the status change is already stored
            logger.exception("%s notice for post %s failed", outcome, post.id)

    async def approve_post(self, admin_id: str, post_id: int) -> Post:
        """Publish a pending post and tell its owner."""
        post = self._transition_post(admin_id, post_id, POST_STATUS_APPROVED)
        await self._notify_owner(post, OUTCOME_APPROVED)
        return post

    async def reject_post(self, admin_id: str, post_id: int) -> Post:
        """Reject a pending post and tell its owner."""
        post = self._transition_post(admin_id, post_id, POST_STATUS_REJECTED)
        await self._notify_owner(post, OUTCOME_REJECTED)
        return post

    def hide_post(self, admin_id: str, post_id: int) -> Post:
        """Take an approved post out of the public feed."""
        return self._transition_post(admin_id, post_id, POST_STATUS_HIDDEN)

    def _resolve_report(self, admin_id: str, report_id: int, new_status: str) -> Report:
        self.require_admin(admin_id)
        report = self._get_report(report_id)
        if report.status != REPORT_STATUS_PENDING:
            raise InvalidTransitionError(f"Report is already {report.status}")

        report.status = new_status
        self.db.commit()
        self.db.refresh(report)
        self.counters.report_resolved()
        logger.info("Admin %s marked report %s as %s", admin_id, report_id, new_status)
        return report

    def dismiss_report(self, admin_id: str, report_id: int) -> Report:
        return self._resolve_report(admin_id, report_id, REPORT_STATUS_DISMISSED)

    def mark_report_reviewed(self, admin_id: str, report_id: int) -> Report:
        return self._resolve_report(admin_id, report_id, REPORT_STATUS_REVIEWED)

    async def remove_reported_post(self, admin_id: str, report_id: int) -> Report:
        """Hide the reported post and close the report in one commit.

        A post that another report already had hidden stays hidden; the
        report is still marked reviewed.
        """
        self.require_admin(admin_id)
        report = self._get_report(report_id)
        if report.status != REPORT_STATUS_PENDING:
            raise InvalidTransitionError(f"Report is already {report.status}")
        if report.post_id is None:
            raise InvalidTransitionError("This report is not about a post")

        post = self._get_post(report.post_id)
        if post.status not in (POST_STATUS_APPROVED, POST_STATUS_HIDDEN):
            raise InvalidTransitionError(f"Cannot remove a {post.status} post")

        newly_hidden = post.status == POST_STATUS_APPROVED
        post.status = POST_STATUS_HIDDEN
        report.status = REPORT_STATUS_REVIEWED
        self.db.commit()
        self.db.refresh(report)
        self.counters.report_resolved()
        logger.info("Admin %s removed post %s via report %s", admin_id, post.id, report_id)

        if newly_hidden:
            await self._notify_owner(post, OUTCOME_REMOVED)
        return report

    def list_posts(self, admin_id: str, status: str = POST_STATUS_PENDING) -> list[Post]:
        """Return posts in ``status``; the pending queue is served oldest first."""
        self.require_admin(admin_id)
        if status not in POST_STATUSES:
            raise ValidationError(f"Unknown post status: {status}")

        order = Post.created_at.asc() if status == POST_STATUS_PENDING else Post.created_at.desc()
        return self.db.query(Post).filter(Post.status == status).order_by(order, Post.id).all()

    def list_reports(self, admin_id: str, status: str = REPORT_STATUS_PENDING) -> list[Report]:
        """Return reports newest first, optionally across every status."""
        self.require_admin(admin_id)
        query = self.db.query(Report)
        if status != REPORT_FILTER_ALL:
            if status not in REPORT_STATUSES:
                raise ValidationError(f"Unknown report status: {status}")
            query = query.filter(Report.status == status)
        return query.order_by(Report.created_at.desc(), Report.id.desc()).all()
