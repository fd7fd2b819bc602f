"""Transactional email for moderation outcomes and new messages.

Every notice here is best-effort. Callers send after their database commit
and a delivery failure is logged, never propagated back into the request.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from html import escape
from typing import Any

import httpx
from sqlalchemy import func
from sqlalchemy.orm import Session

from common_stage.core.errors import NotificationError
from common_stage.core.settings import settings
from common_stage.models import Message, Post, Profile, Thread

logger = logging.getLogger(__name__)

HTTP_BAD_REQUEST = 400

OUTCOME_APPROVED = "approved"
OUTCOME_REJECTED = "rejected"
OUTCOME_REMOVED = "removed"

FALLBACK_RECIPIENT_NAME = "there"
FALLBACK_SENDER_NAME = "Someone"


@dataclass(frozen=True)
class EmailNotice:
    """A rendered email ready to hand to the sender API."""

    to: str
    subject: str
    html: str


def _wrap(body: str, link: str, label: str) -> str:
    return (
        '<div style="font-family: sans-serif; max-width: 560px; margin: 0 auto;">'
        f"{body}"
        f'<p><a href="{escape(link, quote=True)}" '
        'style="display: inline-block; padding: 10px 18px; background: #111; '
        f'color: #fff; border-radius: 6px; text-decoration: none;">{escape(label)}</a></p>'
        '<p style="color: #888; font-size: 12px;">You can turn off these emails in your settings.</p>'
        "</div>"
    )


def preview_text(content: str, limit: int | None = None) -> str:
    """Return ``content`` cut to ``limit`` characters with a trailing ellipsis."""
    limit = limit or settings.notification_preview_chars
    if len(content) > limit:
        return content[:limit] + "..."
    return content


def thread_link(thread_id: int) -> str:
    return f"{settings.public_base_url.rstrip('/')}/?thread={thread_id}"


def post_link(post_id: int) -> str:
    return f"{settings.public_base_url.rstrip('/')}/post/{post_id}"


def guidelines_link() -> str:
    return f"{settings.public_base_url.rstrip('/')}/guidelines"


def render_moderation_notice(
    outcome: str,
    to: str,
    recipient_name: str | None,
    post_title: str,
    post_id: int,
) -> EmailNotice:
    """Render the email telling a poster what happened to their post."""
    name = escape(recipient_name or FALLBACK_RECIPIENT_NAME)
    title = escape(post_title)

    if outcome == OUTCOME_APPROVED:
        subject = f'Your post "{post_title}" is now live'
        body = (
            f"<p>Hi {name},</p>"
            f"<p>Good news: your post <strong>{title}</strong> has been approved and is now "
            "visible to people nearby.</p>"
        )
        html = _wrap(body, post_link(post_id), "View your post")
    elif outcome == OUTCOME_REJECTED:
        subject = f'About your post "{post_title}"'
        body = (
            f"<p>Hi {name},</p>"
            f"<p>Your post <strong>{title}</strong> wasn't approved this time. Please check "
            "our community guidelines and feel free to post again.</p>"
        )
        html = _wrap(body, guidelines_link(), "Read the guidelines")
    elif outcome == OUTCOME_REMOVED:
        subject = f'Your post "{post_title}" has been removed'
        body = (
            f"<p>Hi {name},</p>"
            f"<p>Your post <strong>{title}</strong> was removed after a report from the "
            "community.</p>"
        )
        html = _wrap(body, guidelines_link(), "Read the guidelines")
    else:
        raise ValueError(f"Unknown moderation outcome: {outcome}")

    return EmailNotice(to=to, subject=subject, html=html)


def render_message_notice(
    to: str,
    sender_name: str,
    post_title: str,
    content: str,
    thread_id: int,
    first_message: bool,
) -> EmailNotice:
    """Render the email for a new message in a thread."""
    if first_message:
        subject = f'{sender_name} is interested in "{post_title}"'
        intro = f"<p><strong>{escape(sender_name)}</strong> is interested in your post.</p>"
    else:
        subject = f'New message about "{post_title}"'
        intro = f"<p><strong>{escape(sender_name)}</strong> sent you a message.</p>"

    body = (
        f"{intro}"
        f'<blockquote style="border-left: 3px solid #ddd; padding-left: 12px; color: #444;">'
        f"{escape(preview_text(content))}</blockquote>"
    )
    return EmailNotice(to=to, subject=subject, html=_wrap(body, thread_link(thread_id), "Reply"))


class EmailNotifier:
    """Minimal client for a Resend-style ``POST /emails`` API."""

    def __init__(
        self,
        *,
        api_url: str | None = None,
        api_key: str | None = None,
        sender: str | None = None,
        enabled: bool | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.api_url = api_url or settings.email_api_url
        self.api_key = api_key if api_key is not None else settings.email_api_key
        self.sender = sender or settings.email_from
        self._enabled = settings.email_enabled if enabled is None else enabled
        self.timeout_seconds = timeout_seconds or settings.http_timeout_seconds
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return self._enabled and bool(self.api_key)

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=self.api_url,
                    timeout=httpx.Timeout(self.timeout_seconds),
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
        return self._client

    async def send(self, notice: EmailNotice) -> bool:
        """Deliver one email.

        Returns:
            True when the API accepted the email, False when sending is disabled

        Raises:
            NotificationError: If the request fails or the API rejects it
        """
        if not self.enabled:
            logger.info("Email disabled; skipping notice %r", notice.subject)
            return False

        client = await self._ensure_client()
        payload: dict[str, Any] = {
            "from": self.sender,
            "to": [notice.to],
            "subject": notice.subject,
            "html": notice.html,
        }
        try:
            response = await client.post("/emails", json=payload)
        except httpx.HTTPError as exc:
            raise NotificationError(f"Email request failed: {exc}") from exc

        if response.status_code >= HTTP_BAD_REQUEST:
            raise NotificationError(f"Email API responded with {response.status_code}")
        return True

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""
        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None


class _EmailNotifierSingleton:
    _instance: EmailNotifier | None = None

    @classmethod
    def get_instance(cls) -> EmailNotifier:
        if cls._instance is None:
            cls._instance = EmailNotifier()
        return cls._instance


def get_email_notifier() -> EmailNotifier:
    """Return the process-wide email notifier."""
    return _EmailNotifierSingleton.get_instance()


async def notify_post_moderated(
    notifier: EmailNotifier,
    db: Session,
    post: Post,
    outcome: str,
) -> bool:
    """Tell the post's owner about a moderation outcome.

    Never raises: a missing address or a failed send is logged and reported
    back as False.
    """
    owner = db.get(Profile, post.user_id)
    if owner is None or not owner.email:
        logger.warning("No email address for owner of post %s; skipping %s notice", post.id, outcome)
        return False

    notice = render_moderation_notice(outcome, owner.email, owner.first_name, post.title, post.id)
    try:
        return await notifier.send(notice)
    except NotificationError as exc:
        logger.warning("Failed to send %s notice for post %s: %s", outcome, post.id, exc)
        return False


def message_recipients(db: Session, thread: Thread, sender_id: str) -> list[Profile]:
    """Return the participants to email about a message from ``sender_id``.

    Only participants other than the sender who have an address and have not
    switched notifications off are included.
    """
    recipient_ids = [uid for uid in thread.participant_ids if uid != sender_id]
    if not recipient_ids:
        return []
    profiles = db.query(Profile).filter(Profile.id.in_(recipient_ids)).all()
    return [
        profile
        for profile in profiles
        if profile.email and profile.email_notifications is not False
    ]


async def notify_new_message(
    notifier: EmailNotifier,
    db: Session,
    message: Message,
) -> int:
    """Email the other participant about ``message``.

    Returns:
        The number of emails the sender API accepted
    """
    thread = db.get(Thread, message.thread_id)
    if thread is None:
        logger.warning("Message %s refers to missing thread %s", message.id, message.thread_id)
        return 0

    recipients = message_recipients(db, thread, message.sender_id)
    if not recipients:
        return 0

    message_count = (
        db.query(func.count(Message.id)).filter(Message.thread_id == thread.id).scalar() or 0
    )
    sender = db.get(Profile, message.sender_id)
    sender_name = (sender.first_name if sender else None) or FALLBACK_SENDER_NAME
    post_title = thread.post.title if thread.post else "your post"

    sent = 0
    for recipient in recipients:
        notice = render_message_notice(
            to=recipient.email,  # type: ignore[arg-type]
            sender_name=sender_name,
            post_title=post_title,
            content=message.content,
            thread_id=thread.id,
            first_message=message_count == 1,
        )
        try:
            if await notifier.send(notice):
                sent += 1
        except NotificationError as exc:
            logger.warning("Failed to send message notice for thread %s: %s", thread.id, exc)
    return sent
