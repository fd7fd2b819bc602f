# src/common_stage/services/__init__.py
"""Business logic services for the Common application."""

from .geocoding import GeocodingClient
from .moderation import ModerationCounters, ModerationWorkflow
from .notifications import EmailNotifier
from .realtime import ChangeFeed, MessageSync, ThreadListSync
from .storage import AvatarStorage
from .threads import ThreadStore

__all__ = [
    "ThreadStore",
    "ChangeFeed",
    "MessageSync",
    "ThreadListSync",
    "ModerationWorkflow",
    "ModerationCounters",
    "EmailNotifier",
    "AvatarStorage",
    "GeocodingClient",
]
