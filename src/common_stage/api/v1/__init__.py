# src/common_stage/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import (
    geocode_router,
    moderation_router,
    posts_router,
    profiles_router,
    reports_router,
    threads_router,
)

__all__ = [
    "posts_router",
    "threads_router",
    "reports_router",
    "moderation_router",
    "profiles_router",
    "geocode_router",
]
