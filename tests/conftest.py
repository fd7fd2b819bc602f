# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator
from datetime import timedelta
from itertools import count
from typing import Any
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("PYTEST_RUNNING", "true")

from common_stage.core.security import create_access_token
from common_stage.db.session import Base
from common_stage.db.session import get_db as app_get_session
from common_stage.db.time import utcnow
from common_stage.main import app as fastapi_app
from common_stage.models import Post, Profile
from common_stage.models.post import POST_STATUS_APPROVED
from common_stage.services.moderation import reset_moderation_counters
from common_stage.services.notifications import EmailNotifier, get_email_notifier
from common_stage.services.realtime import ChangeFeed, get_change_feed

TEST_DB_URL = "sqlite://"

_PROFILE_COUNTER = count(1)


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    connection = engine.connect()
    transaction = connection.begin()
    SessionLocal = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    session = SessionLocal()
    session.begin_nested()

    @event.listens_for(session, "after_transaction_end")
    def restart_savepoint(sess: Session, trans) -> None:  # pragma: no cover - SQLAlchemy internals
        if trans.nested and not getattr(trans._parent, "nested", False):
            session.begin_nested()

    try:
        yield session
    finally:
        event.remove(session, "after_transaction_end", restart_savepoint)
        session.close()

        if transaction.is_active:
            transaction.rollback()
        connection.close()

        # Ensure each test sees a clean database even if commits occurred.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture()
def feed() -> Iterator[ChangeFeed]:
    """A fresh change feed per test."""
    change_feed = ChangeFeed(queue_size=16)
    try:
        yield change_feed
    finally:
        change_feed.close()


@pytest.fixture()
def notifier() -> AsyncMock:
    """Email notifier double that records every notice it is asked to send."""
    mock = AsyncMock(spec=EmailNotifier)
    mock.send.return_value = True
    return mock


@pytest.fixture(autouse=True)
def override_dependencies(
    app: FastAPI,
    db_session: Session,
    feed: ChangeFeed,
    notifier: AsyncMock,
) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    app.dependency_overrides[get_change_feed] = lambda: feed
    app.dependency_overrides[get_email_notifier] = lambda: notifier
    reset_moderation_counters()
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)
        app.dependency_overrides.pop(get_change_feed, None)
        app.dependency_overrides.pop(get_email_notifier, None)
        reset_moderation_counters()


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


def auth_headers(user_id: str) -> dict[str, str]:
    """Return authorization headers for ``user_id``."""
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture()
def make_profile(db_session: Session) -> Callable[..., Profile]:
    """Return a factory that persists profiles."""

    def _make(first_name: str = "Sam", **overrides: Any) -> Profile:
        user_id = overrides.pop("id", f"user-{next(_PROFILE_COUNTER)}")
        profile = Profile(
            id=user_id,
            first_name=first_name,
            email=overrides.pop("email", f"{user_id}@example.com"),
            **overrides,
        )
        db_session.add(profile)
        db_session.commit()
        db_session.refresh(profile)
        return profile

    return _make


@pytest.fixture()
def make_post(db_session: Session) -> Callable[..., Post]:
    """Return a factory that persists posts, approved by default."""

    def _make(owner: Profile, **overrides: Any) -> Post:
        values: dict[str, Any] = {
            "title": "Tennis",
            "location": "Clapham Common",
            "latitude": 51.4618,
            "longitude": -0.1384,
            "time": "Saturday 18 October, 2pm",
            "name": owner.first_name,
            "status": POST_STATUS_APPROVED,
            "expires_at": utcnow() + timedelta(days=7),
        }
        values.update(overrides)
        post = Post(user_id=owner.id, **values)
        db_session.add(post)
        db_session.commit()
        db_session.refresh(post)
        return post

    return _make


@pytest.fixture()
def poster(make_profile) -> Profile:
    """The user who posts the activity."""
    return make_profile("Alice", id="alice")


@pytest.fixture()
def responder(make_profile) -> Profile:
    """A user who responds to posts."""
    return make_profile("Ben", id="ben")


@pytest.fixture()
def admin(make_profile) -> Profile:
    """A moderator."""
    return make_profile("Ada", id="admin", is_admin=True)


@pytest.fixture()
def poster_headers(poster: Profile) -> dict[str, str]:
    return auth_headers(poster.id)


@pytest.fixture()
def responder_headers(responder: Profile) -> dict[str, str]:
    return auth_headers(responder.id)


@pytest.fixture()
def admin_headers(admin: Profile) -> dict[str, str]:
    return auth_headers(admin.id)


@pytest.fixture()
def headers_for() -> Callable[[str], dict[str, str]]:
    """Return a helper that builds bearer headers for any user id."""
    return auth_headers
