"""Database models for video watch progress.

One row per (user, level, topic, video). The row is created by the first
save of a watch session and only ever updated afterwards.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import UUID


# Position percentage at which a video counts as watched
COMPLETION_PERCENT = 95

# Share of the duration that must be counted as watched playback
COMPLETION_WATCH_RATIO = 0.8


# ==============================================================================
# Helper Functions
# ==============================================================================


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def percent_of(position_seconds: float, duration_seconds: float) -> int:
    """Rounded playback percentage clamped to 0-100."""
    if duration_seconds <= 0:
        return 0
    # int(x + 0.5) rounds halves up, like the player UI does
    percent = int(position_seconds / duration_seconds * 100 + 0.5)
    return max(0, min(100, percent))


def is_completion_reached(
    percent: int,
    watch_seconds: int,
    duration_seconds: float | None,
    completion_percent: int = COMPLETION_PERCENT,
    watch_ratio: float = COMPLETION_WATCH_RATIO,
) -> bool:
    """Dual completion rule: far enough in, or enough of it actually watched."""
    if percent >= completion_percent:
        return True
    if duration_seconds and duration_seconds > 0:
        return watch_seconds >= duration_seconds * watch_ratio
    return False


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Partition key: user_id, so a user's whole history is one partition
# Clustering: level_id, topic_id, video_id (the rest of the composite identity)
VIDEO_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.video_progress (
    user_id UUID,
    level_id TEXT,
    topic_id INT,
    video_id TEXT,
    progress_percentage INT,
    watch_time_seconds INT,
    actual_watch_time_seconds INT,
    completed BOOLEAN,
    last_watched_at TIMESTAMP,
    created_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY ((user_id), level_id, topic_id, video_id)
) WITH CLUSTERING ORDER BY (level_id ASC, topic_id ASC, video_id ASC)
"""

PROGRESS_TABLES_CQL = [
    VIDEO_PROGRESS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass(frozen=True)
class WatchIdentity:
    """Who is watching which video. ``user_id`` is None for anonymous viewers."""

    user_id: UUID | None
    level_id: str
    topic_id: int
    video_id: str

    @property
    def is_anonymous(self) -> bool:
        return self.user_id is None

    def log_fields(self) -> dict[str, Any]:
        return {
            "user_id": str(self.user_id) if self.user_id else None,
            "level_id": self.level_id,
            "topic_id": self.topic_id,
            "video_id": self.video_id,
        }


class VideoProgress:
    """Persisted watch progress for one user and one lesson video.

    Attributes:
        user_id: User UUID
        level_id: School level identifier
        topic_id: Topic number within the level
        video_id: Video identifier on the hosting platform
        progress_percentage: Position percentage at last save (0-100)
        watch_time_seconds: Raw playback position at last save (resume point)
        actual_watch_time_seconds: Seconds counted as continuous playback
        completed: Whether the completion threshold was reached
        last_watched_at: Timestamp of the last save
        created_at: First save timestamp
        updated_at: Last write timestamp
    """

    def __init__(
        self,
        user_id: UUID,
        level_id: str,
        topic_id: int,
        video_id: str,
        progress_percentage: int = 0,
        watch_time_seconds: int = 0,
        actual_watch_time_seconds: int = 0,
        completed: bool = False,
        last_watched_at: datetime | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.user_id = user_id
        self.level_id = level_id
        self.topic_id = topic_id
        self.video_id = video_id
        self.progress_percentage = progress_percentage
        self.watch_time_seconds = watch_time_seconds
        self.actual_watch_time_seconds = actual_watch_time_seconds
        self.completed = completed
        self.last_watched_at = ensure_utc_aware(last_watched_at) or datetime.now(UTC)
        self.created_at = ensure_utc_aware(created_at)
        self.updated_at = ensure_utc_aware(updated_at)

    @property
    def identity(self) -> WatchIdentity:
        return WatchIdentity(
            user_id=self.user_id,
            level_id=self.level_id,
            topic_id=self.topic_id,
            video_id=self.video_id,
        )

    @classmethod
    def from_row(cls, row: Any) -> "VideoProgress":
        """Create VideoProgress instance from Cassandra row."""
        return cls(
            user_id=row.user_id,
            level_id=row.level_id,
            topic_id=row.topic_id,
            video_id=row.video_id,
            progress_percentage=row.progress_percentage or 0,
            watch_time_seconds=row.watch_time_seconds or 0,
            actual_watch_time_seconds=row.actual_watch_time_seconds or 0,
            completed=bool(row.completed),
            last_watched_at=row.last_watched_at,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "user_id": self.user_id,
            "level_id": self.level_id,
            "topic_id": self.topic_id,
            "video_id": self.video_id,
            "progress_percentage": self.progress_percentage,
            "watch_time_seconds": self.watch_time_seconds,
            "actual_watch_time_seconds": self.actual_watch_time_seconds,
            "completed": self.completed,
            "last_watched_at": self.last_watched_at,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return (
            f"<VideoProgress user={self.user_id} video={self.video_id} "
            f"{self.progress_percentage}% completed={self.completed}>"
        )
