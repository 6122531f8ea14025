"""Pydantic schemas for video watch progress.

Request and response models for:
- Progress queries (resume check, history, summary)
- The websocket watch protocol
"""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .models import VideoProgress


# ==============================================================================
# Progress Query Schemas
# ==============================================================================


class VideoProgressResponse(BaseModel):
    """Saved progress of one video."""

    model_config = ConfigDict(from_attributes=True)

    level_id: str
    topic_id: int
    video_id: str
    progress_percentage: int = Field(ge=0, le=100, description="0-100 percentage")
    watch_time_seconds: int = Field(description="Resume position")
    actual_watch_time_seconds: int = Field(description="Counted watch time")
    completed: bool
    last_watched_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: VideoProgress) -> "VideoProgressResponse":
        """Create response from entity."""
        return cls(
            level_id=entity.level_id,
            topic_id=entity.topic_id,
            video_id=entity.video_id,
            progress_percentage=entity.progress_percentage,
            watch_time_seconds=entity.watch_time_seconds,
            actual_watch_time_seconds=entity.actual_watch_time_seconds,
            completed=entity.completed,
            last_watched_at=entity.last_watched_at,
        )


class VideoProgressListResponse(BaseModel):
    """All saved progress of the current user."""

    items: list[VideoProgressResponse]
    total: int


class VideoProgressCheckResponse(BaseModel):
    """Quick progress check used when a lesson page opens."""

    level_id: str
    topic_id: int
    video_id: str
    completed: bool
    progress_percentage: int
    resume_position_seconds: int = Field(description="Position to resume video from")
    actual_watch_time_seconds: int = 0


class LevelProgressSummary(BaseModel):
    """Per-level rollup."""

    level_id: str
    videos_started: int
    topics_completed: int = Field(description="Distinct topics with a completed video")
    completed_topic_ids: list[int] = []


class ProgressSummaryResponse(BaseModel):
    """Aggregated watch statistics for dashboards and reports."""

    user_id: UUID
    videos_started: int
    total_watch_time_seconds: int
    levels: list[LevelProgressSummary] = []
    last_watched: VideoProgressResponse | None = None


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str
    success: bool = True


# ==============================================================================
# Websocket Watch Protocol
# ==============================================================================


class OpenVideoMessage(BaseModel):
    """Client asks to start tracking a video."""

    type: Literal["open"]
    level_id: str = Field(..., min_length=1)
    topic_id: int = Field(..., ge=0)
    video_id: str = Field(..., min_length=1)
    current_time: float | None = Field(None, ge=0)
    duration: float | None = Field(None, ge=0)


class SampleMessage(BaseModel):
    """Client reports the player's position."""

    type: Literal["sample"]
    current_time: float = Field(..., ge=0)
    duration: float | None = Field(None, ge=0)


class StateMessage(BaseModel):
    """Client reports a player state change."""

    type: Literal["state"]
    state: int | str
    current_time: float | None = Field(None, ge=0)
    duration: float | None = Field(None, ge=0)


class CloseVideoMessage(BaseModel):
    """Client closed the video (navigation, unmount)."""

    type: Literal["close"]


class ProgressEvent(BaseModel):
    """Server pushes a progress update."""

    type: Literal["progress"] = "progress"
    percentage: int
    completed: bool


class CompletedEvent(BaseModel):
    """Server announces the video was completed."""

    type: Literal["completed"] = "completed"
    level_id: str
    topic_id: int
    video_id: str
    message: str = "Video completed! Great job!"
