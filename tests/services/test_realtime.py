# mypy: ignore-errors
"""Tests for the change feed and the live message/thread views."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from common_stage.services.realtime import (
    EVENT_INSERT,
    TABLE_MESSAGE,
    TABLE_THREAD,
    ChangeEvent,
    ChangeFeed,
    ChangeFilter,
    MessageSync,
    SenderSummary,
    ThreadListSync,
)

T0 = datetime(2024, 6, 15, 12, 0, tzinfo=UTC)


def message_event(message_id: int, thread_id: int = 1, sender_id: str = "ben", minute: int = 0) -> ChangeEvent:
    return ChangeEvent(
        event_type=EVENT_INSERT,
        table=TABLE_MESSAGE,
        new_row={
            "id": message_id,
            "thread_id": thread_id,
            "sender_id": sender_id,
            "content": f"message {message_id}",
            "created_at": T0 + timedelta(minutes=minute),
        },
    )


def thread_event(thread_id: int, participants: list[str], post_id: int = 10, minute: int = 0) -> ChangeEvent:
    return ChangeEvent(
        event_type=EVENT_INSERT,
        table=TABLE_THREAD,
        new_row={
            "id": thread_id,
            "post_id": post_id,
            "participant_ids": participants,
            "created_by": participants[-1],
            "created_at": T0 + timedelta(minutes=minute),
            "closed_at": None,
        },
    )


def make_sender_resolver(calls: list[str]):
    async def resolve(user_id: str) -> SenderSummary | None:
        calls.append(user_id)
        if user_id == "ghost":
            return None
        return SenderSummary(user_id=user_id, name=user_id.title())

    return resolve


async def resolve_post(post_id: int):
    return {"id": post_id, "title": "Tennis", "expires_at": None}


def test_filter_matches_equality_and_containment() -> None:
    by_thread = ChangeFilter(TABLE_MESSAGE, "thread_id", 1)
    by_participant = ChangeFilter(TABLE_THREAD, "participant_ids", "alice", contains=True)

    assert by_thread.matches(message_event(1, thread_id=1))
    assert not by_thread.matches(message_event(2, thread_id=2))
    assert not by_thread.matches(thread_event(1, ["alice", "ben"]))
    assert by_participant.matches(thread_event(1, ["alice", "ben"]))
    assert not by_participant.matches(thread_event(2, ["carol", "ben"]))


def test_publish_reaches_only_matching_subscribers() -> None:
    feed = ChangeFeed(queue_size=8)
    one = feed.subscribe(ChangeFilter(TABLE_MESSAGE, "thread_id", 1))
    two = feed.subscribe(ChangeFilter(TABLE_MESSAGE, "thread_id", 2))

    delivered = feed.publish(message_event(1, thread_id=1))

    assert delivered == 1
    assert one._queue.qsize() == 1
    assert two._queue.qsize() == 0


def test_cancel_is_idempotent() -> None:
    feed = ChangeFeed(queue_size=8)
    subscription = feed.subscribe(ChangeFilter(TABLE_MESSAGE))

    subscription.cancel()
    subscription.cancel()

    assert not subscription.active
    assert feed.subscriber_count == 0
    assert feed.publish(message_event(1)) == 0


def test_overflow_marks_subscription_lagged() -> None:
    feed = ChangeFeed(queue_size=2)
    subscription = feed.subscribe(ChangeFilter(TABLE_MESSAGE))

    for message_id in range(3):
        feed.publish(message_event(message_id))

    assert subscription.take_lag() is True
    assert subscription.take_lag() is False


@pytest.mark.asyncio
async def test_cancel_wakes_blocked_consumer() -> None:
    feed = ChangeFeed(queue_size=8)
    subscription = feed.subscribe(ChangeFilter(TABLE_MESSAGE))

    waiter = asyncio.create_task(subscription.next_event())
    await asyncio.sleep(0)
    subscription.cancel()

    assert await asyncio.wait_for(waiter, timeout=1) is None


@pytest.mark.asyncio
async def test_message_sync_deduplicates_fetch_and_feed() -> None:
    """A message seen in the initial fetch and again on the feed appears once."""
    feed = ChangeFeed(queue_size=8)
    calls: list[str] = []
    sync = MessageSync(1, make_sender_resolver(calls))
    sync.start(feed)

    await sync.load([message_event(1).new_row, message_event(2, minute=1).new_row])
    duplicate = await sync.apply(message_event(2, minute=1))
    fresh = await sync.apply(message_event(3, minute=2))

    assert duplicate is None
    assert fresh is not None
    assert [message.id for message in sync.messages] == [1, 2, 3]
    assert calls == ["ben"]
    sync.close()


@pytest.mark.asyncio
async def test_message_sync_ignores_other_threads() -> None:
    feed = ChangeFeed(queue_size=8)
    sync = MessageSync(1, make_sender_resolver([]))
    sync.start(feed)

    assert await sync.apply(message_event(9, thread_id=2)) is None
    assert sync.messages == []
    sync.close()


@pytest.mark.asyncio
async def test_message_sync_orders_loaded_rows_by_time() -> None:
    sync = MessageSync(1, make_sender_resolver([]))

    await sync.load([message_event(5, minute=3).new_row, message_event(4, minute=1).new_row])

    assert [message.id for message in sync.messages] == [4, 5]


@pytest.mark.asyncio
async def test_unknown_sender_gets_placeholder() -> None:
    feed = ChangeFeed(queue_size=8)
    sync = MessageSync(1, make_sender_resolver([]))
    sync.start(feed)

    item = await sync.apply(message_event(1, sender_id="ghost"))

    assert item.sender.name == "Unknown"
    sync.close()


@pytest.mark.asyncio
async def test_local_echo_is_not_duplicated() -> None:
    """The sender's own message, merged locally, is skipped when the feed echoes it."""
    feed = ChangeFeed(queue_size=8)
    sync = MessageSync(1, make_sender_resolver([]))
    sync.start(feed)
    event = message_event(7, sender_id="alice")

    local = sync.add_local(event.new_row, SenderSummary(user_id="alice", name="Alice"))
    echoed = await sync.apply(event)

    assert local is not None
    assert echoed is None
    assert len(sync.messages) == 1
    sync.close()


@pytest.mark.asyncio
async def test_late_resolution_after_close_is_discarded() -> None:
    """A sender lookup that completes after teardown leaves the view untouched."""
    feed = ChangeFeed(queue_size=8)
    release = asyncio.Event()

    async def slow_resolver(user_id: str) -> SenderSummary:
        await release.wait()
        return SenderSummary(user_id=user_id, name="Ben")

    sync = MessageSync(1, slow_resolver)
    sync.start(feed)

    pending = asyncio.create_task(sync.apply(message_event(1)))
    await asyncio.sleep(0)
    sync.close()
    release.set()

    assert await pending is None
    assert sync.messages == []


@pytest.mark.asyncio
async def test_run_pushes_new_messages_and_stops_on_close() -> None:
    feed = ChangeFeed(queue_size=8)
    sync = MessageSync(1, make_sender_resolver([]))
    sync.start(feed)
    received: list[int] = []
    got_one = asyncio.Event()

    async def on_item(item) -> None:
        received.append(item.id)
        got_one.set()

    runner = asyncio.create_task(sync.run(on_item))
    feed.publish(message_event(1))
    await asyncio.wait_for(got_one.wait(), timeout=1)

    sync.close()
    await asyncio.wait_for(runner, timeout=1)

    assert received == [1]
    assert feed.subscriber_count == 0


@pytest.mark.asyncio
async def test_run_resyncs_after_lag() -> None:
    """Events dropped on overflow are recovered by a full re-fetch."""
    feed = ChangeFeed(queue_size=1)
    rows = [message_event(message_id, minute=message_id).new_row for message_id in (1, 2, 3)]

    async def refetch():
        return rows

    sync = MessageSync(1, make_sender_resolver([]), refetch)
    sync.start(feed)

    for message_id in (1, 2, 3):
        feed.publish(message_event(message_id, minute=message_id))

    received: list[int] = []
    done = asyncio.Event()

    async def on_item(item) -> None:
        received.append(item.id)
        if len(sync.messages) == 3:
            done.set()

    runner = asyncio.create_task(sync.run(on_item))
    await asyncio.wait_for(done.wait(), timeout=1)
    sync.close()
    await asyncio.wait_for(runner, timeout=1)

    assert [message.id for message in sync.messages] == [1, 2, 3]
    assert sorted(received) == [1, 2, 3]


@pytest.mark.asyncio
async def test_thread_list_sync_scoped_to_participant() -> None:
    feed = ChangeFeed(queue_size=8)
    inbox = ThreadListSync("alice", resolve_post)
    inbox.start(feed)

    mine = await inbox.apply(thread_event(1, ["alice", "ben"]))
    not_mine = await inbox.apply(thread_event(2, ["carol", "ben"]))
    again = await inbox.apply(thread_event(1, ["alice", "ben"]))

    assert mine is not None
    assert mine.post["title"] == "Tennis"
    assert not_mine is None
    assert again is None
    assert [thread.id for thread in inbox.threads] == [1]
    inbox.close()


@pytest.mark.asyncio
async def test_thread_list_sync_newest_first() -> None:
    feed = ChangeFeed(queue_size=8)
    inbox = ThreadListSync("alice", resolve_post)
    inbox.start(feed)

    await inbox.load([thread_event(1, ["alice", "ben"], minute=0).new_row])
    await inbox.apply(thread_event(2, ["alice", "carol"], minute=5))

    assert [thread.id for thread in inbox.threads] == [2, 1]
    inbox.close()


@pytest.mark.asyncio
async def test_thread_with_missing_post_is_skipped() -> None:
    async def no_post(post_id: int):
        return None

    feed = ChangeFeed(queue_size=8)
    inbox = ThreadListSync("alice", no_post)
    inbox.start(feed)

    assert await inbox.apply(thread_event(1, ["alice", "ben"])) is None
    assert inbox.threads == []
    inbox.close()


def test_start_after_close_fails() -> None:
    sync = MessageSync(1, make_sender_resolver([]))
    sync.close()

    with pytest.raises(RuntimeError):
        sync.start(ChangeFeed(queue_size=8))
