"""SQLAlchemy models for the Common application."""

from .post import Post
from .profile import Profile
from .report import Report
from .thread import Message, Thread

__all__ = [
    "Message",
    "Post",
    "Profile",
    "Report",
    "Thread",
]
