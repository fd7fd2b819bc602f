"""Schemas for abuse reports."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from common_stage.models.report import REPORT_REASONS


class ReportCreate(BaseModel):
    """Schema for flagging either a post or a thread."""

    post_id: int | None = None
    thread_id: int | None = None
    reason: str = Field(..., description="One of the fixed report reasons")
    details: str | None = Field(None, max_length=1000, description="Free text used with 'Other'")

    @model_validator(mode="after")
    def _check_target_and_reason(self) -> "ReportCreate":
        if (self.post_id is None) == (self.thread_id is None):
            raise ValueError("exactly one of post_id or thread_id is required")
        if self.reason not in REPORT_REASONS:
            raise ValueError(f"reason must be one of: {', '.join(REPORT_REASONS)}")
        return self


class ReportResponse(BaseModel):
    """Schema for report information returned by the API."""

    id: int
    post_id: int | None
    thread_id: int | None
    reported_by: str
    reason: str
    status: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
