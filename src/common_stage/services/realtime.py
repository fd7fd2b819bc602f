"""Realtime change feed and the live views folded from it.

The feed is an in-process publish/subscribe hub: stores publish a
``ChangeEvent`` after each committed insert and every matching
``Subscription`` receives it on its own queue. Live views (``MessageSync`` for
one conversation, ``ThreadListSync`` for a user's inbox) consume a
subscription, resolve the fields a raw row does not carry and merge the result
into state that was fetched up front, dropping anything already present.

Everything here runs on the application's event loop; publishing from another
thread is not supported.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Generic, TypeVar

from common_stage.core.settings import settings

logger = logging.getLogger(__name__)

EVENT_INSERT = "INSERT"

TABLE_MESSAGE = "message"
TABLE_THREAD = "thread"


@dataclass(frozen=True)
class ChangeEvent:
    """A single row change as delivered by the feed."""

    event_type: str
    table: str
    new_row: Mapping[str, Any]


@dataclass(frozen=True)
class ChangeFilter:
    """Which events a subscription wants.

    ``column``/``value`` narrow the match to rows where the column equals the
    value, or contains it when ``contains`` is set (for list-valued columns).
    """

    table: str
    column: str | None = None
    value: Any = None
    contains: bool = False
    event_type: str = EVENT_INSERT

    def matches(self, event: ChangeEvent) -> bool:
        """Return True if ``event`` falls inside this filter."""
        if event.table != self.table or event.event_type != self.event_type:
            return False
        if self.column is None:
            return True
        current = event.new_row.get(self.column)
        if self.contains:
            return current is not None and self.value in current
        return current == self.value


class Subscription:
    """Cancellable handle on a stream of matching change events.

    Iterating the handle yields events until ``cancel()`` is called. When the
    queue overflows, events are dropped and ``lagged`` is raised so the consumer
    can fall back to a full re-fetch.
    """

    def __init__(self, feed: ChangeFeed, change_filter: ChangeFilter, maxsize: int) -> None:
        self.change_filter = change_filter
        self._feed = feed
        self._maxsize = max(1, maxsize)
        self._queue: asyncio.Queue[ChangeEvent | None] = asyncio.Queue()
        self._active = True
        self.lagged = False

    @property
    def active(self) -> bool:
        return self._active

    def offer(self, event: ChangeEvent) -> bool:
        """Queue ``event`` for delivery; returns False if it was not queued."""
        if not self._active:
            return False
        if self._queue.qsize() >= self._maxsize:
            if not self.lagged:
                logger.warning(
                    "Subscription on %s lagged; dropping events until re-fetch",
                    self.change_filter.table,
                )
            self.lagged = True
            return False
        self._queue.put_nowait(event)
        return True

    def take_lag(self) -> bool:
        """Return whether events were dropped since the last call, and reset."""
        lagged, self.lagged = self.lagged, False
        return lagged

    async def next_event(self) -> ChangeEvent | None:
        """Wait for the next event; None once the subscription is cancelled."""
        if not self._active:
            return None
        event = await self._queue.get()
        if not self._active:
            return None
        return event

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> ChangeEvent:
        event = await self.next_event()
        if event is None:
            raise StopAsyncIteration
        return event

    def cancel(self) -> None:
        """Stop delivering events. Safe to call any number of times."""
        if not self._active:
            return
        self._active = False
        self._feed.discard(self)
        # Wake a consumer blocked in next_event().
        self._queue.put_nowait(None)


class ChangeFeed:
    """In-process fan-out of committed row inserts to subscribers."""

    def __init__(self, queue_size: int | None = None) -> None:
        self.queue_size = queue_size or settings.realtime_queue_size
        self._subscriptions: list[Subscription] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, change_filter: ChangeFilter) -> Subscription:
        """Register interest in events matching ``change_filter``."""
        subscription = Subscription(self, change_filter, self.queue_size)
        self._subscriptions.append(subscription)
        logger.debug(
            "Subscribed to %s where %s=%r",
            change_filter.table,
            change_filter.column,
            change_filter.value,
        )
        return subscription

    def discard(self, subscription: Subscription) -> None:
        """Forget ``subscription``; unknown handles are ignored."""
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            pass

    def publish(self, event: ChangeEvent) -> int:
        """Deliver ``event`` to every matching subscription.

        Returns:
            Number of subscriptions the event was queued for
        """
        delivered = 0
        for subscription in list(self._subscriptions):
            if subscription.change_filter.matches(event) and subscription.offer(event):
                delivered += 1
        return delivered

    def close(self) -> None:
        """Cancel every open subscription."""
        for subscription in list(self._subscriptions):
            subscription.cancel()


_change_feed: ChangeFeed | None = None


def get_change_feed() -> ChangeFeed:
    """Return the process-wide change feed."""
    global _change_feed
    if _change_feed is None:
        _change_feed = ChangeFeed()
    return _change_feed


# ---------------------------------------------------------------------------
# Live views
# ---------------------------------------------------------------------------


@dataclass
class SenderSummary:
    """Denormalized sender fields that raw message rows do not carry."""

    user_id: str
    name: str
    avatar_url: str | None = None
    date_of_birth: date | None = None


@dataclass
class SyncedMessage:
    id: int
    thread_id: int
    sender_id: str
    content: str
    created_at: datetime
    sender: SenderSummary


@dataclass
class SyncedThread:
    id: int
    post_id: int
    participant_ids: list[str]
    created_at: datetime
    closed_at: datetime | None
    post: Mapping[str, Any] = field(default_factory=dict)


ItemT = TypeVar("ItemT", SyncedMessage, SyncedThread)
RowLoader = Callable[[], Awaitable[Sequence[Mapping[str, Any]]]]


class _LiveView(Generic[ItemT]):
    """Shared subscribe/merge/teardown logic for live lists."""

    def __init__(self, change_filter: ChangeFilter, refetch: RowLoader | None = None) -> None:
        self.change_filter = change_filter
        self.items: list[ItemT] = []
        self._ids: set[int] = set()
        self._refetch = refetch
        self._subscription: Subscription | None = None
        self._closed = False

    @property
    def active(self) -> bool:
        return (
            not self._closed
            and self._subscription is not None
            and self._subscription.active
        )

    def start(self, feed: ChangeFeed) -> Subscription:
        """Subscribe to ``feed``; calling twice returns the same handle."""
        if self._closed:
            raise RuntimeError("live view already closed")
        if self._subscription is None:
            self._subscription = feed.subscribe(self.change_filter)
        return self._subscription

    def close(self) -> None:
        """Tear the view down. Idempotent."""
        self._closed = True
        if self._subscription is not None:
            self._subscription.cancel()
        self._on_close()

    async def load(self, rows: Sequence[Mapping[str, Any]]) -> list[ItemT]:
        """Fold fetched rows into the view, skipping ones already present."""
        added: list[ItemT] = []
        for row in rows:
            if row.get("id") in self._ids or not self._in_scope(row):
                continue
            item = await self._build(row)
            if self._closed:
                return added
            if item is not None and self._merge(item):
                added.append(item)
        if added:
            self._reorder()
        return added

    async def apply(self, event: ChangeEvent) -> ItemT | None:
        """Fold one feed event into the view.

        Returns:
            The new item, or None if the event was out of scope, a duplicate,
            or arrived after teardown
        """
        if not self.active:
            return None
        row = event.new_row
        if not self._in_scope(row):
            logger.debug("Discarding out-of-scope %s event", event.table)
            return None
        if row.get("id") in self._ids:
            return None
        item = await self._build(row)
        # Resolution may have finished after the view was torn down.
        if item is None or not self.active:
            return None
        return item if self._merge(item) else None

    async def resync(self) -> list[ItemT]:
        """Re-fetch everything and merge whatever the feed missed."""
        if self._refetch is None:
            return []
        rows = await self._refetch()
        return await self.load(rows)

    async def run(self, on_item: Callable[[ItemT], Awaitable[None]] | None = None) -> None:
        """Consume the subscription until the view is closed."""
        if self._subscription is None:
            raise RuntimeError("live view not started")
        subscription = self._subscription
        async for event in subscription:
            new_items: list[ItemT] = []
            if subscription.take_lag():
                new_items.extend(await self.resync())
            item = await self.apply(event)
            if item is not None:
                new_items.append(item)
            if on_item is not None and self.active:
                for new_item in new_items:
                    await on_item(new_item)

    def _merge(self, item: ItemT) -> bool:
        if item.id in self._ids:
            return False
        self._ids.add(item.id)
        self._insert(item)
        return True

    def _on_close(self) -> None:
        pass

    def _in_scope(self, row: Mapping[str, Any]) -> bool:
        raise NotImplementedError

    async def _build(self, row: Mapping[str, Any]) -> ItemT | None:
        raise NotImplementedError

    def _insert(self, item: ItemT) -> None:
        raise NotImplementedError

    def _reorder(self) -> None:
        raise NotImplementedError


SenderResolver = Callable[[str], Awaitable[SenderSummary | None]]


class MessageSync(_LiveView[SyncedMessage]):
    """Live, de-duplicated message list for one thread.

    Sender profiles are memoized per view; the cache is dropped on close.
    """

    def __init__(
        self,
        thread_id: int,
        resolve_sender: SenderResolver,
        refetch: RowLoader | None = None,
    ) -> None:
        super().__init__(ChangeFilter(TABLE_MESSAGE, "thread_id", thread_id), refetch)
        self.thread_id = thread_id
        self._resolve_sender = resolve_sender
        self._sender_cache: dict[str, SenderSummary] = {}

    @property
    def messages(self) -> list[SyncedMessage]:
        return self.items

    def add_local(self, row: Mapping[str, Any], sender: SenderSummary) -> SyncedMessage | None:
        """Merge the sender's own freshly stored message ahead of its feed echo."""
        self._sender_cache.setdefault(sender.user_id, sender)
        message = self._to_message(row, sender)
        return message if self._merge(message) else None

    async def sender_for(self, user_id: str) -> SenderSummary:
        """Return the cached sender summary, fetching it once per view."""
        cached = self._sender_cache.get(user_id)
        if cached is not None:
            return cached
        summary = await self._resolve_sender(user_id)
        if summary is None:
            summary = SenderSummary(user_id=user_id, name="Unknown")
        self._sender_cache[user_id] = summary
        return summary

    def _on_close(self) -> None:
        self._sender_cache.clear()

    def _in_scope(self, row: Mapping[str, Any]) -> bool:
        return row.get("thread_id") == self.thread_id

    async def _build(self, row: Mapping[str, Any]) -> SyncedMessage | None:
        sender = await self.sender_for(row["sender_id"])
        return self._to_message(row, sender)

    def _insert(self, item: SyncedMessage) -> None:
        self.items.append(item)

    def _reorder(self) -> None:
        self.items.sort(key=lambda message: (message.created_at, message.id))

    @staticmethod
    def _to_message(row: Mapping[str, Any], sender: SenderSummary) -> SyncedMessage:
        return SyncedMessage(
            id=row["id"],
            thread_id=row["thread_id"],
            sender_id=row["sender_id"],
            content=row["content"],
            created_at=row["created_at"],
            sender=sender,
        )


PostResolver = Callable[[int], Awaitable[Mapping[str, Any] | None]]


class ThreadListSync(_LiveView[SyncedThread]):
    """Live inbox of threads a user participates in, newest first."""

    def __init__(
        self,
        user_id: str,
        resolve_post: PostResolver,
        refetch: RowLoader | None = None,
    ) -> None:
        super().__init__(
            ChangeFilter(TABLE_THREAD, "participant_ids", user_id, contains=True),
            refetch,
        )
        self.user_id = user_id
        self._resolve_post = resolve_post

    @property
    def threads(self) -> list[SyncedThread]:
        return self.items

    def _in_scope(self, row: Mapping[str, Any]) -> bool:
        return self.user_id in (row.get("participant_ids") or ())

    async def _build(self, row: Mapping[str, Any]) -> SyncedThread | None:
        post = await self._resolve_post(row["post_id"])
        if post is None:
            return None
        return SyncedThread(
            id=row["id"],
            post_id=row["post_id"],
            participant_ids=list(row["participant_ids"]),
            created_at=row["created_at"],
            closed_at=row.get("closed_at"),
            post=post,
        )

    def _insert(self, item: SyncedThread) -> None:
        self.items.insert(0, item)

    def _reorder(self) -> None:
        self.items.sort(key=lambda thread: (thread.created_at, thread.id), reverse=True)
