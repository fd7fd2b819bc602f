"""Post-related endpoints: the public feed, owner actions and interest."""

from __future__ import annotations

from fastapi import APIRouter, Query, Response, status

from common_stage.api.v1.dependencies import (
    ChangeFeedDep,
    CurrentUserDep,
    EmailNotifierDep,
    OptionalUserIdDep,
    SessionDep,
)
from common_stage.schemas.post import PostCreate, PostResponse, PostUpdate
from common_stage.schemas.thread import InterestRequest, InterestResponse, MessageResponse
from common_stage.services import post_service
from common_stage.services.threads import ThreadStore

from .threads import notify_message_best_effort, to_thread_response

router = APIRouter(prefix="/posts", tags=["posts"])


@router.get("/", response_model=list[PostResponse])
async def list_posts(
    db: SessionDep,
    lat: float | None = Query(None, ge=-90, le=90, description="Viewer latitude"),
    lon: float | None = Query(None, ge=-180, le=180, description="Viewer longitude"),
) -> list[PostResponse]:
    """List approved posts, nearest first when the viewer shares a location."""
    posts = post_service.list_public_posts(db)
    return post_service.ranked_post_responses(posts, lat, lon)


@router.get("/mine", response_model=list[PostResponse])
async def list_my_posts(current_user: CurrentUserDep, db: SessionDep) -> list[PostResponse]:
    """List the caller's pending and approved posts, newest first."""
    posts = post_service.list_my_posts(db, current_user.id)
    return [post_service.to_post_response(post) for post in posts]


@router.get("/{post_id}", response_model=PostResponse)
async def get_post(
    post_id: int,
    db: SessionDep,
    viewer_id: OptionalUserIdDep,
    lat: float | None = Query(None, ge=-90, le=90),
    lon: float | None = Query(None, ge=-180, le=180),
) -> PostResponse:
    """Return a single approved post, or the caller's own pending post."""
    post = post_service.get_visible_post(db, post_id, viewer_id)
    return post_service.to_post_response(post, lat, lon)


@router.post("/", response_model=PostResponse, status_code=status.HTTP_201_CREATED)
async def create_post(
    payload: PostCreate,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> PostResponse:
    """Create a post; it waits in the moderation queue until approved."""
    post = post_service.create_post(db, current_user, payload)
    return post_service.to_post_response(post)


@router.patch("/{post_id}", response_model=PostResponse)
async def update_post(
    post_id: int,
    payload: PostUpdate,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> PostResponse:
    """Edit one of the caller's pending or approved posts."""
    post = post_service.update_post(db, current_user.id, post_id, payload)
    return post_service.to_post_response(post)


@router.post("/{post_id}/close", response_model=PostResponse)
async def close_post(post_id: int, current_user: CurrentUserDep, db: SessionDep) -> PostResponse:
    """Stop taking interest in a post."""
    post = post_service.close_post(db, current_user.id, post_id)
    return post_service.to_post_response(post)


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_post(post_id: int, current_user: CurrentUserDep, db: SessionDep) -> Response:
    """Delete one of the caller's posts."""
    post_service.delete_post(db, current_user.id, post_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{post_id}/interest", response_model=InterestResponse)
async def express_interest(
    post_id: int,
    payload: InterestRequest,
    current_user: CurrentUserDep,
    db: SessionDep,
    feed: ChangeFeedDep,
    notifier: EmailNotifierDep,
) -> InterestResponse:
    """Open the caller's conversation about a post, with an optional first message.

    Clicking again returns the existing thread without counting twice.
    """
    result = ThreadStore(db, feed).express_interest(post_id, current_user.id, payload.message)
    if result.message is not None:
        await notify_message_best_effort(notifier, db, result.message)

    return InterestResponse(
        thread=to_thread_response(result.thread),
        created=result.created,
        message=MessageResponse.model_validate(result.message) if result.message else None,
    )
