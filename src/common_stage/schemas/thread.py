"""Schemas for conversation threads and messages."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ThreadPostSummary(BaseModel):
    """The slice of a post shown in a thread list."""

    id: int
    title: str
    location: str
    status: str
    expires_at: datetime | None

    model_config = ConfigDict(from_attributes=True)


class ThreadResponse(BaseModel):
    """A thread as seen by one of its participants."""

    id: int
    post_id: int
    participant_ids: list[str]
    created_by: str
    created_at: datetime
    closed_at: datetime | None
    is_closed: bool = False
    post: ThreadPostSummary | None = None

    model_config = ConfigDict(from_attributes=True)


class MessageCreate(BaseModel):
    """Schema for sending a message; blank content is rejected by the service."""

    content: str = Field(..., max_length=5000)


class MessageResponse(BaseModel):
    """A single stored message."""

    id: int
    thread_id: int
    sender_id: str
    content: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ParticipantResponse(BaseModel):
    """Display data for a participant, with the photo withheld until revealed."""

    user_id: str
    name: str
    display_name: str
    initials: str
    avatar_url: str | None = None


class ThreadDetailResponse(BaseModel):
    """A thread with its full message history."""

    thread: ThreadResponse
    messages: list[MessageResponse]
    participants: list[ParticipantResponse]
    photos_revealed: bool


class InterestRequest(BaseModel):
    """Body of an "interested" click, with an optional opening note."""

    message: str | None = Field(None, max_length=5000)


class InterestResponse(BaseModel):
    """Result of expressing interest in a post."""

    thread: ThreadResponse
    created: bool = Field(..., description="False when the thread already existed")
    message: MessageResponse | None = None
