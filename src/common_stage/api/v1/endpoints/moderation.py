"""Admin moderation endpoints for posts and reports."""

from __future__ import annotations

from fastapi import APIRouter, Query
from sqlalchemy.orm import Session

from common_stage.api.v1.dependencies import AdminDep, EmailNotifierDep, SessionDep
from common_stage.models import Post, Report
from common_stage.schemas.moderation import (
    ModeratedPostResponse,
    ModeratedReportResponse,
    ModerationCountsResponse,
)
from common_stage.schemas.post import PostResponse
from common_stage.schemas.report import ReportResponse
from common_stage.services.moderation import (
    ModerationCounters,
    ModerationWorkflow,
    get_moderation_counters,
)
from common_stage.services.notifications import EmailNotifier
from common_stage.services.post_service import to_post_response

router = APIRouter(prefix="/moderation", tags=["moderation"])


def _workflow(admin_id: str, db: Session, notifier: EmailNotifier) -> ModerationWorkflow:
    return ModerationWorkflow(db, notifier, get_moderation_counters(admin_id, db))


def _counts(counters: ModerationCounters) -> ModerationCountsResponse:
    return ModerationCountsResponse.model_validate(counters)


def _post_result(post: Post, counters: ModerationCounters) -> ModeratedPostResponse:
    return ModeratedPostResponse(post=to_post_response(post), counts=_counts(counters))


def _report_result(report: Report, counters: ModerationCounters) -> ModeratedReportResponse:
    return ModeratedReportResponse(
        report=ReportResponse.model_validate(report),
        counts=_counts(counters),
    )


@router.get("/counts", response_model=ModerationCountsResponse)
async def get_counts(admin: AdminDep, db: SessionDep) -> ModerationCountsResponse:
    """Reload the pending badges from the database."""
    counters = get_moderation_counters(admin.id, db)
    counters.refresh(db)
    return _counts(counters)


@router.get("/posts", response_model=list[PostResponse])
async def list_posts(
    admin: AdminDep,
    db: SessionDep,
    notifier: EmailNotifierDep,
    status_filter: str = Query("pending", alias="status"),
) -> list[PostResponse]:
    """List posts by status; the pending queue is oldest first."""
    posts = _workflow(admin.id, db, notifier).list_posts(admin.id, status_filter)
    return [to_post_response(post) for post in posts]


@router.post("/posts/{post_id}/approve", response_model=ModeratedPostResponse)
async def approve_post(
    post_id: int,
    admin: AdminDep,
    db: SessionDep,
    notifier: EmailNotifierDep,
) -> ModeratedPostResponse:
    workflow = _workflow(admin.id, db, notifier)
    post = await workflow.approve_post(admin.id, post_id)
    return _post_result(post, workflow.counters)


@router.post("/posts/{post_id}/reject", response_model=ModeratedPostResponse)
async def reject_post(
    post_id: int,
    admin: AdminDep,
    db: SessionDep,
    notifier: EmailNotifierDep,
) -> ModeratedPostResponse:
    workflow = _workflow(admin.id, db, notifier)
    post = await workflow.reject_post(admin.id, post_id)
    return _post_result(post, workflow.counters)


@router.post("/posts/{post_id}/hide", response_model=ModeratedPostResponse)
async def hide_post(
    post_id: int,
    admin: AdminDep,
    db: SessionDep,
    notifier: EmailNotifierDep,
) -> ModeratedPostResponse:
    workflow = _workflow(admin.id, db, notifier)
    post = workflow.hide_post(admin.id, post_id)
    return _post_result(post, workflow.counters)


@router.get("/reports", response_model=list[ReportResponse])
async def list_reports(
    admin: AdminDep,
    db: SessionDep,
    notifier: EmailNotifierDep,
    status_filter: str = Query("pending", alias="status"),
) -> list[ReportResponse]:
    """List reports newest first; ``status=all`` includes every state."""
    reports = _workflow(admin.id, db, notifier).list_reports(admin.id, status_filter)
    return [ReportResponse.model_validate(report) for report in reports]


@router.post("/reports/{report_id}/dismiss", response_model=ModeratedReportResponse)
async def dismiss_report(
    report_id: int,
    admin: AdminDep,
    db: SessionDep,
    notifier: EmailNotifierDep,
) -> ModeratedReportResponse:
    workflow = _workflow(admin.id, db, notifier)
    report = workflow.dismiss_report(admin.id, report_id)
    return _report_result(report, workflow.counters)


@router.post("/reports/{report_id}/review", response_model=ModeratedReportResponse)
async def review_report(
    report_id: int,
    admin: AdminDep,
    db: SessionDep,
    notifier: EmailNotifierDep,
) -> ModeratedReportResponse:
    workflow = _workflow(admin.id, db, notifier)
    report = workflow.mark_report_reviewed(admin.id, report_id)
    return _report_result(report, workflow.counters)


@router.post("/reports/{report_id}/remove-post", response_model=ModeratedReportResponse)
async def remove_reported_post(
    report_id: int,
    admin: AdminDep,
    db: SessionDep,
    notifier: EmailNotifierDep,
) -> ModeratedReportResponse:
    """Hide the reported post and mark the report reviewed."""
    workflow = _workflow(admin.id, db, notifier)
    report = await workflow.remove_reported_post(admin.id, report_id)
    return _report_result(report, workflow.counters)
