# src/common_stage/schemas/__init__.py
"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .geocode import GeocodeResult
from .moderation import ModeratedPostResponse, ModeratedReportResponse, ModerationCountsResponse
from .post import PostCreate, PostResponse, PostUpdate
from .profile import ProfileCreate, ProfileResponse, ProfileUpdate
from .report import ReportCreate, ReportResponse
from .thread import (
    InterestRequest,
    InterestResponse,
    MessageCreate,
    MessageResponse,
    ThreadDetailResponse,
    ThreadResponse,
)

__all__ = [
    "GeocodeResult",
    "ModeratedPostResponse", "ModeratedReportResponse", "ModerationCountsResponse",
    "PostCreate", "PostResponse", "PostUpdate",
    "ProfileCreate", "ProfileResponse", "ProfileUpdate",
    "ReportCreate", "ReportResponse",
    "InterestRequest", "InterestResponse",
    "MessageCreate", "MessageResponse",
    "ThreadDetailResponse", "ThreadResponse",
]
