# src/common_stage/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .geocode import router as geocode_router
from .moderation import router as moderation_router
from .posts import router as posts_router
from .profiles import router as profiles_router
from .reports import router as reports_router
from .threads import router as threads_router

__all__ = [
    "posts_router",
    "threads_router",
    "reports_router",
    "moderation_router",
    "profiles_router",
    "geocode_router",
]
