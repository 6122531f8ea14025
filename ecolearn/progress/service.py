"""Watch progress service layer.

Business logic for:
- Resume checks when a lesson page opens
- Watch history and dashboard/report summaries
- Explicit progress reset
"""

from collections import defaultdict
from uuid import UUID

import structlog

from .models import VideoProgress
from .schemas import (
    LevelProgressSummary,
    ProgressSummaryResponse,
    VideoProgressCheckResponse,
    VideoProgressResponse,
)
from .store import CassandraProgressStore, ProgressStoreError


logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class ProgressError(Exception):
    """Base progress error."""

    def __init__(self, message: str, code: str = "progress_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class ProgressNotFoundError(ProgressError):
    """No saved progress for the video."""

    def __init__(self, message: str = "No saved progress for this video"):
        super().__init__(message, "progress_not_found")


class ProgressUnavailableError(ProgressError):
    """The progress store failed."""

    def __init__(self, message: str = "Progress storage is unavailable"):
        super().__init__(message, "store_unavailable")


# ==============================================================================
# Progress Service
# ==============================================================================


class ProgressService:
    """Read-side and reset operations over saved watch progress."""

    def __init__(self, store: CassandraProgressStore):
        self.store = store

    async def get_video_progress(
        self,
        user_id: UUID,
        level_id: str,
        topic_id: int,
        video_id: str,
    ) -> VideoProgressCheckResponse:
        """Quick progress check for lesson load (resume feature)."""
        try:
            progress = await self.store.fetch(user_id, level_id, topic_id, video_id)
        except ProgressStoreError as e:
            raise ProgressUnavailableError from e

        if progress:
            return VideoProgressCheckResponse(
                level_id=level_id,
                topic_id=topic_id,
                video_id=video_id,
                completed=progress.completed,
                progress_percentage=progress.progress_percentage,
                resume_position_seconds=progress.watch_time_seconds,
                actual_watch_time_seconds=progress.actual_watch_time_seconds,
            )

        return VideoProgressCheckResponse(
            level_id=level_id,
            topic_id=topic_id,
            video_id=video_id,
            completed=False,
            progress_percentage=0,
            resume_position_seconds=0,
        )

    async def list_user_progress(self, user_id: UUID) -> list[VideoProgress]:
        """All saved progress of a user, most recently watched first."""
        try:
            return await self.store.list_for_user(user_id)
        except ProgressStoreError as e:
            raise ProgressUnavailableError from e

    async def get_progress_summary(self, user_id: UUID) -> ProgressSummaryResponse:
        """Aggregate a user's watch history.

        Returns:
            Totals across all videos plus a per-level breakdown listing the
            topics whose video is completed.
        """
        records = await self.list_user_progress(user_id)

        started: dict[str, int] = defaultdict(int)
        completed_topics: dict[str, set[int]] = defaultdict(set)
        total_watch_time = 0
        videos_completed = 0

        for record in records:
            started[record.level_id] += 1
            total_watch_time += record.actual_watch_time_seconds
            if record.completed:
                videos_completed += 1
                completed_topics[record.level_id].add(record.topic_id)

        levels = [
            LevelProgressSummary(
                level_id=level_id,
                videos_started=count,
                topics_completed=len(completed_topics[level_id]),
                completed_topic_ids=sorted(completed_topics[level_id]),
            )
            for level_id, count in sorted(started.items())
        ]

        return ProgressSummaryResponse(
            user_id=user_id,
            videos_started=len(records),
            videos_completed=videos_completed,
            total_watch_time_seconds=total_watch_time,
            levels=levels,
            last_watched=VideoProgressResponse.from_entity(records[0])
            if records
            else None,
        )

    async def reset_video_progress(
        self,
        user_id: UUID,
        level_id: str,
        topic_id: int,
        video_id: str,
    ) -> VideoProgress:
        """Clear progress and completion of one video (for rewatching)."""
        try:
            existing = await self.store.fetch(user_id, level_id, topic_id, video_id)
            if existing is None:
                raise ProgressNotFoundError
            return await self.store.reset(existing)
        except ProgressStoreError as e:
            raise ProgressUnavailableError from e
