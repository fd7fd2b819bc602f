"""Schemas for the admin moderation screens."""

from pydantic import BaseModel, ConfigDict

from common_stage.schemas.post import PostResponse
from common_stage.schemas.report import ReportResponse


class ModerationCountsResponse(BaseModel):
    """Pending badge counts."""

    pending_posts: int
    pending_reports: int

    model_config = ConfigDict(from_attributes=True)


class ModeratedPostResponse(BaseModel):
    """A post after an admin transition, plus the updated counts."""

    post: PostResponse
    counts: ModerationCountsResponse


class ModeratedReportResponse(BaseModel):
    """A report after an admin transition, plus the updated counts."""

    report: ReportResponse
    counts: ModerationCountsResponse
