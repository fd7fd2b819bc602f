"""Endpoint for reporting posts and conversations."""

from __future__ import annotations

from fastapi import APIRouter, status

from common_stage.api.v1.dependencies import CurrentUserDep, SessionDep
from common_stage.models.report import REPORT_REASONS
from common_stage.schemas.report import ReportCreate, ReportResponse
from common_stage.services import post_service

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/reasons", response_model=list[str])
async def list_reasons() -> list[str]:
    """Return the fixed list of report reasons, in display order."""
    return list(REPORT_REASONS)


@router.post("/", response_model=ReportResponse, status_code=status.HTTP_201_CREATED)
async def create_report(
    payload: ReportCreate,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> ReportResponse:
    """Flag a post or a conversation for admin review."""
    report = post_service.create_report(db, current_user.id, payload)
    return ReportResponse.model_validate(report)
