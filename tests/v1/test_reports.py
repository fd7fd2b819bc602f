# mypy: ignore-errors
"""Tests for report endpoints."""

from fastapi import status

from common_stage.models.report import REPORT_REASONS


def test_list_reasons(client) -> None:
    response = client.get("/api/v1/reports/reasons")

    assert response.json() == list(REPORT_REASONS)


def test_report_post(client, poster, responder_headers, make_post) -> None:
    post = make_post(poster)

    response = client.post(
        "/api/v1/reports/",
        json={"post_id": post.id, "reason": "Spam or misleading"},
        headers=responder_headers,
    )

    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["status"] == "pending"
    assert response.json()["reported_by"] == "ben"


def test_report_other_uses_details(client, poster, responder_headers, make_post) -> None:
    post = make_post(poster)

    response = client.post(
        "/api/v1/reports/",
        json={"post_id": post.id, "reason": "Other", "details": "Looks like a scam"},
        headers=responder_headers,
    )

    assert response.json()["reason"] == "Looks like a scam"


def test_report_needs_single_target(client, responder_headers) -> None:
    response = client.post(
        "/api/v1/reports/",
        json={"reason": "Spam or misleading"},
        headers=responder_headers,
    )

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_report_missing_post(client, responder_headers) -> None:
    response = client.post(
        "/api/v1/reports/",
        json={"post_id": 4242, "reason": "Spam or misleading"},
        headers=responder_headers,
    )

    assert response.status_code == status.HTTP_404_NOT_FOUND
