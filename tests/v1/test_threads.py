# mypy: ignore-errors
"""Tests for conversation endpoints and live updates."""

from datetime import timedelta

import pytest
from fastapi import status
from starlette.websockets import WebSocketDisconnect

from common_stage.core.security import create_access_token
from common_stage.db.time import utcnow
from common_stage.services.threads import ThreadStore


@pytest.fixture()
def thread(db_session, feed, poster, responder, make_post):
    post = make_post(poster)
    thread, _ = ThreadStore(db_session, feed).find_or_create_thread(post.id, poster.id, responder.id)
    return thread


def test_send_message(client, thread, responder_headers, notifier) -> None:
    response = client.post(
        f"/api/v1/threads/{thread.id}/messages",
        json={"content": "  Shall we say 2pm?  "},
        headers=responder_headers,
    )

    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()
    assert data["content"] == "Shall we say 2pm?"
    assert data["sender_id"] == "ben"
    assert notifier.send.await_args.args[0].to == "alice@example.com"


def test_send_blank_message(client, thread, responder_headers) -> None:
    response = client.post(
        f"/api/v1/threads/{thread.id}/messages",
        json={"content": "   "},
        headers=responder_headers,
    )

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert response.json()["detail"] == "Message cannot be empty"


def test_outsider_cannot_post_or_read(client, thread, make_profile, headers_for) -> None:
    outsider = make_profile("Olive")
    headers = headers_for(outsider.id)

    posted = client.post(
        f"/api/v1/threads/{thread.id}/messages",
        json={"content": "Hi"},
        headers=headers,
    )
    read = client.get(f"/api/v1/threads/{thread.id}", headers=headers)

    assert posted.status_code == status.HTTP_403_FORBIDDEN
    assert read.status_code == status.HTTP_404_NOT_FOUND


def test_closed_thread_rejects_messages(client, db_session, thread, responder_headers) -> None:
    thread.post.expires_at = utcnow() - timedelta(hours=25)
    db_session.commit()

    response = client.post(
        f"/api/v1/threads/{thread.id}/messages",
        json={"content": "Anyone?"},
        headers=responder_headers,
    )

    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["detail"] == "This conversation has closed"


def test_thread_detail_reveals_photos_after_both_speak(
    client, db_session, thread, poster, responder, poster_headers, responder_headers
) -> None:
    poster.avatar_url = "https://cdn.example.com/alice.png"
    responder.avatar_url = "https://cdn.example.com/ben.png"
    db_session.commit()

    client.post(f"/api/v1/threads/{thread.id}/messages", json={"content": "Hi"}, headers=responder_headers)
    before = client.get(f"/api/v1/threads/{thread.id}", headers=responder_headers).json()

    client.post(f"/api/v1/threads/{thread.id}/messages", json={"content": "Hey"}, headers=poster_headers)
    after = client.get(f"/api/v1/threads/{thread.id}", headers=responder_headers).json()

    assert before["photos_revealed"] is False
    avatars_before = {p["user_id"]: p["avatar_url"] for p in before["participants"]}
    assert avatars_before == {"alice": None, "ben": "https://cdn.example.com/ben.png"}

    assert after["photos_revealed"] is True
    assert [m["content"] for m in after["messages"]] == ["Hi", "Hey"]
    assert all(p["avatar_url"] for p in after["participants"])


def test_thread_list_for_both_participants(client, thread, poster_headers, responder_headers) -> None:
    mine = client.get("/api/v1/threads/", headers=poster_headers).json()
    theirs = client.get("/api/v1/threads/", headers=responder_headers).json()

    assert [t["id"] for t in mine] == [thread.id]
    assert [t["id"] for t in theirs] == [thread.id]
    assert mine[0]["is_closed"] is False
    assert mine[0]["post"]["title"] == "Tennis"


def test_live_thread_streams_new_messages(client, thread, responder_headers) -> None:
    """A subscriber sees the snapshot, then each new message once."""
    token = create_access_token("alice")
    with client.websocket_connect(f"/api/v1/threads/{thread.id}/live?token={token}") as ws:
        snapshot = ws.receive_json()
        assert snapshot == {"type": "snapshot", "items": []}

        sent = client.post(
            f"/api/v1/threads/{thread.id}/messages",
            json={"content": "On my way"},
            headers=responder_headers,
        )
        assert sent.status_code == status.HTTP_201_CREATED

        pushed = ws.receive_json()
        assert pushed["type"] == "insert"
        assert pushed["item"]["id"] == sent.json()["id"]
        assert pushed["item"]["content"] == "On my way"
        assert pushed["item"]["sender"]["display_name"] == "Ben"


def test_live_inbox_receives_new_thread(client, poster, responder_headers, make_post) -> None:
    post = make_post(poster)
    token = create_access_token(poster.id)
    with client.websocket_connect(f"/api/v1/threads/live?token={token}") as ws:
        assert ws.receive_json() == {"type": "snapshot", "items": []}

        client.post(f"/api/v1/posts/{post.id}/interest", json={}, headers=responder_headers)

        pushed = ws.receive_json()
        assert pushed["type"] == "insert"
        assert pushed["item"]["participant_ids"] == ["alice", "ben"]
        assert pushed["item"]["post"]["title"] == "Tennis"
        assert pushed["item"]["is_closed"] is False


def test_live_thread_rejects_outsider(client, thread, make_profile) -> None:
    outsider = make_profile("Olive")
    token = create_access_token(outsider.id)

    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect(f"/api/v1/threads/{thread.id}/live?token={token}"):
            pass

    assert exc_info.value.code == status.WS_1008_POLICY_VIOLATION


def test_live_thread_rejects_bad_token(client, thread) -> None:
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect(f"/api/v1/threads/{thread.id}/live?token=not-a-jwt"):
            pass
