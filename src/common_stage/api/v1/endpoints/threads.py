"""Conversation endpoints: thread lists, message history and live updates."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from contextlib import suppress
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status
from fastapi.encoders import jsonable_encoder
from jose import JWTError
from sqlalchemy.orm import Session

from common_stage.api.v1.dependencies import (
    ChangeFeedDep,
    CurrentUserDep,
    EmailNotifierDep,
    SessionDep,
)
from common_stage.core.errors import CommonError
from common_stage.core.security import decode_subject
from common_stage.core.settings import settings
from common_stage.db.time import utcnow
from common_stage.models import Message, Post, Profile, Thread
from common_stage.schemas.thread import (
    MessageCreate,
    MessageResponse,
    ParticipantResponse,
    ThreadDetailResponse,
    ThreadResponse,
)
from common_stage.services.notifications import EmailNotifier, notify_new_message
from common_stage.services.profile_facts import (
    display_name,
    initials,
    photos_revealed,
    resolve_avatar_url,
)
from common_stage.services.realtime import (
    ChangeFeed,
    MessageSync,
    SenderSummary,
    SyncedMessage,
    SyncedThread,
    ThreadListSync,
)
from common_stage.services.threads import (
    ThreadStore,
    closed_by_dates,
    is_thread_closed,
    message_row,
    thread_row,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/threads", tags=["threads"])

UNKNOWN_NAME = "Unknown"


def to_thread_response(thread: Thread, now: datetime | None = None) -> ThreadResponse:
    """Convert a Thread ORM instance to an API schema."""
    response = ThreadResponse.model_validate(thread)
    return response.model_copy(update={"is_closed": is_thread_closed(thread, thread.post, now)})


def _participants(
    db: Session,
    thread: Thread,
    messages: list[Message],
    viewer_id: str,
) -> tuple[list[ParticipantResponse], bool]:
    revealed = photos_revealed(thread.participant_ids, {message.sender_id for message in messages})
    profiles = {
        profile.id: profile
        for profile in db.query(Profile).filter(Profile.id.in_(thread.participant_ids)).all()
    }

    participants: list[ParticipantResponse] = []
    for user_id in thread.participant_ids:
        profile = profiles.get(user_id)
        name = profile.first_name if profile else UNKNOWN_NAME
        dob = profile.date_of_birth if profile else None
        avatar_url = None
        if profile and (revealed or user_id == viewer_id):
            avatar_url = resolve_avatar_url(profile.avatar_url, settings.storage_base_url or "")
        participants.append(
            ParticipantResponse(
                user_id=user_id,
                name=name,
                display_name=display_name(name, dob),
                initials=initials(name),
                avatar_url=avatar_url,
            )
        )
    return participants, revealed


async def notify_message_best_effort(
    notifier: EmailNotifier,
    db: Session,
    message: Message,
) -> None:
    """Send new-message emails without letting a failure reach the caller."""
    try:
        await notify_new_message(notifier, db, message)
    except Exception:  # noqa: BLE001 - delivery is best-effort once the message is stored
        logger.exception("Message notification for thread %s failed", message.thread_id)


@router.get("/", response_model=list[ThreadResponse])
async def list_threads(current_user: CurrentUserDep, db: SessionDep) -> list[ThreadResponse]:
    """List the caller's threads, newest first with closed ones last."""
    now = utcnow()
    threads = ThreadStore(db).list_threads_for_user(current_user.id, now)
    return [to_thread_response(thread, now) for thread in threads]


@router.get("/{thread_id}", response_model=ThreadDetailResponse)
async def get_thread(
    thread_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> ThreadDetailResponse:
    """Return one thread with its full message history."""
    store = ThreadStore(db)
    thread = store.get_thread_for_participant(thread_id, current_user.id)
    messages = store.list_messages(thread.id)
    participants, revealed = _participants(db, thread, messages, current_user.id)
    return ThreadDetailResponse(
        thread=to_thread_response(thread),
        messages=[MessageResponse.model_validate(message) for message in messages],
        participants=participants,
        photos_revealed=revealed,
    )


@router.post(
    "/{thread_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    thread_id: int,
    payload: MessageCreate,
    current_user: CurrentUserDep,
    db: SessionDep,
    feed: ChangeFeedDep,
    notifier: EmailNotifierDep,
) -> MessageResponse:
    """Append a message to a thread the caller takes part in."""
    message = ThreadStore(db, feed).append_message(thread_id, current_user.id, payload.content)
    await notify_message_best_effort(notifier, db, message)
    return MessageResponse.model_validate(message)


# ---------------------------------------------------------------------------
# Live views
# ---------------------------------------------------------------------------


async def _authenticate_socket(websocket: WebSocket, token: str, db: Session) -> str | None:
    try:
        user_id = decode_subject(token)
    except JWTError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return None
    if db.get(Profile, user_id) is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return None
    return user_id


def _message_payload(item: SyncedMessage) -> dict[str, Any]:
    payload = jsonable_encoder(item)
    payload["sender"]["display_name"] = display_name(item.sender.name, item.sender.date_of_birth)
    return payload


def _thread_payload(item: SyncedThread, now: datetime | None = None) -> dict[str, Any]:
    payload = jsonable_encoder(item)
    payload["is_closed"] = closed_by_dates(item.closed_at, item.post.get("expires_at"), now)
    return payload


async def _serve_live_view(
    websocket: WebSocket,
    view: MessageSync | ThreadListSync,
    feed: ChangeFeed,
    snapshot: Callable[[], list[dict[str, Any]]],
    serialize: Callable[[Any], dict[str, Any]],
) -> None:
    # Subscribe before fetching so nothing committed in between is lost.
    view.start(feed)
    try:
        await view.resync()
        await websocket.send_json({"type": "snapshot", "items": snapshot()})

        async def push(item: Any) -> None:
            await websocket.send_json({"type": "insert", "item": serialize(item)})

        runner = asyncio.create_task(view.run(push))
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.debug("Live view client disconnected")
        finally:
            view.close()
            runner.cancel()
            with suppress(asyncio.CancelledError, WebSocketDisconnect):
                await runner
    finally:
        view.close()


@router.websocket("/live")
async def live_threads(
    websocket: WebSocket,
    db: SessionDep,
    feed: ChangeFeedDep,
    token: str = Query(...),
) -> None:
    """Stream the caller's thread list, then every new thread they join."""
    user_id = await _authenticate_socket(websocket, token, db)
    if user_id is None:
        return
    await websocket.accept()

    store = ThreadStore(db, feed)

    async def resolve_post(post_id: int) -> Mapping[str, Any] | None:
        post = db.get(Post, post_id)
        if post is None:
            return None
        return {
            "id": post.id,
            "title": post.title,
            "location": post.location,
            "status": post.status,
            "expires_at": post.expires_at,
        }

    async def refetch() -> list[dict[str, Any]]:
        return [thread_row(thread) for thread in store.list_threads_for_user(user_id)]

    view = ThreadListSync(user_id, resolve_post, refetch)

    def snapshot() -> list[dict[str, Any]]:
        now = utcnow()
        payloads = [_thread_payload(item, now) for item in view.threads]
        return sorted(payloads, key=lambda payload: payload["is_closed"])

    await _serve_live_view(websocket, view, feed, snapshot, _thread_payload)


@router.websocket("/{thread_id}/live")
async def live_thread(
    websocket: WebSocket,
    thread_id: int,
    db: SessionDep,
    feed: ChangeFeedDep,
    token: str = Query(...),
) -> None:
    """Stream a thread's messages, then every message added to it."""
    user_id = await _authenticate_socket(websocket, token, db)
    if user_id is None:
        return

    store = ThreadStore(db, feed)
    try:
        thread = store.get_thread_for_participant(thread_id, user_id)
    except CommonError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await websocket.accept()

    async def resolve_sender(sender_id: str) -> SenderSummary | None:
        profile = db.get(Profile, sender_id)
        if profile is None:
            return None
        return SenderSummary(
            user_id=profile.id,
            name=profile.first_name,
            avatar_url=resolve_avatar_url(profile.avatar_url, settings.storage_base_url or ""),
            date_of_birth=profile.date_of_birth,
        )

    async def refetch() -> list[dict[str, Any]]:
        return [message_row(message) for message in store.list_messages(thread.id)]

    view = MessageSync(thread.id, resolve_sender, refetch)

    def snapshot() -> list[dict[str, Any]]:
        return [_message_payload(item) for item in view.messages]

    await _serve_live_view(websocket, view, feed, snapshot, _message_payload)
