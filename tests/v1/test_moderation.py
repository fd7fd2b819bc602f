# mypy: ignore-errors
"""Tests for admin moderation endpoints."""

from fastapi import status

from common_stage.models import Report
from common_stage.models.post import POST_STATUS_PENDING


def _report(db_session, reporter_id: str, post_id: int) -> Report:
    report = Report(post_id=post_id, reported_by=reporter_id, reason="Safety concern")
    db_session.add(report)
    db_session.commit()
    db_session.refresh(report)
    return report


def test_non_admin_is_forbidden(client, responder_headers) -> None:
    response = client.get("/api/v1/moderation/posts", headers=responder_headers)

    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["detail"] == "Admin access required"


def test_pending_queue_and_approval(client, poster, admin_headers, make_post, notifier) -> None:
    post = make_post(poster, status=POST_STATUS_PENDING)

    queue = client.get("/api/v1/moderation/posts", headers=admin_headers).json()
    assert [item["id"] for item in queue] == [post.id]

    counts = client.get("/api/v1/moderation/counts", headers=admin_headers).json()
    assert counts == {"pending_posts": 1, "pending_reports": 0}

    approved = client.post(f"/api/v1/moderation/posts/{post.id}/approve", headers=admin_headers)
    assert approved.status_code == status.HTTP_200_OK
    assert approved.json()["post"]["status"] == "approved"
    assert approved.json()["counts"]["pending_posts"] == 0
    assert notifier.send.await_args.args[0].subject == 'Your post "Tennis" is now live'

    assert client.get("/api/v1/posts/").json()[0]["id"] == post.id


def test_reject_then_approve_conflicts(client, poster, admin_headers, make_post) -> None:
    post = make_post(poster, status=POST_STATUS_PENDING)

    rejected = client.post(f"/api/v1/moderation/posts/{post.id}/reject", headers=admin_headers)
    again = client.post(f"/api/v1/moderation/posts/{post.id}/approve", headers=admin_headers)

    assert rejected.json()["post"]["status"] == "rejected"
    assert again.status_code == status.HTTP_409_CONFLICT


def test_hide_approved_post(client, poster, admin_headers, make_post) -> None:
    post = make_post(poster)

    response = client.post(f"/api/v1/moderation/posts/{post.id}/hide", headers=admin_headers)

    assert response.json()["post"]["status"] == "hidden"
    assert client.get("/api/v1/posts/").json() == []


def test_unknown_status_filter(client, admin_headers) -> None:
    response = client.get("/api/v1/moderation/posts", params={"status": "bogus"}, headers=admin_headers)

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_report_queue_actions(client, db_session, poster, responder, admin_headers, make_post, notifier) -> None:
    post = make_post(poster)
    dismissed = _report(db_session, responder.id, post.id)
    removed = _report(db_session, responder.id, post.id)

    queue = client.get("/api/v1/moderation/reports", headers=admin_headers).json()
    assert {item["id"] for item in queue} == {dismissed.id, removed.id}

    dismiss = client.post(f"/api/v1/moderation/reports/{dismissed.id}/dismiss", headers=admin_headers)
    assert dismiss.json()["report"]["status"] == "dismissed"
    assert dismiss.json()["counts"]["pending_reports"] == 1

    remove = client.post(f"/api/v1/moderation/reports/{removed.id}/remove-post", headers=admin_headers)
    assert remove.json()["report"]["status"] == "reviewed"
    assert remove.json()["counts"]["pending_reports"] == 0
    assert notifier.send.await_args.args[0].subject == 'Your post "Tennis" has been removed'

    everything = client.get(
        "/api/v1/moderation/reports", params={"status": "all"}, headers=admin_headers
    ).json()
    assert len(everything) == 2


def test_review_report(client, db_session, poster, responder, admin_headers, make_post) -> None:
    post = make_post(poster)
    report = _report(db_session, responder.id, post.id)

    response = client.post(f"/api/v1/moderation/reports/{report.id}/review", headers=admin_headers)
    again = client.post(f"/api/v1/moderation/reports/{report.id}/review", headers=admin_headers)

    assert response.json()["report"]["status"] == "reviewed"
    assert again.status_code == status.HTTP_409_CONFLICT


def test_revoked_admin_loses_access(client, db_session, admin, poster, admin_headers, make_post) -> None:
    first = make_post(poster, status=POST_STATUS_PENDING)
    second = make_post(poster, status=POST_STATUS_PENDING)
    assert client.post(f"/api/v1/moderation/posts/{first.id}/approve", headers=admin_headers).status_code == 200

    admin.is_admin = False
    db_session.commit()

    response = client.post(f"/api/v1/moderation/posts/{second.id}/approve", headers=admin_headers)
    assert response.status_code == status.HTTP_403_FORBIDDEN
