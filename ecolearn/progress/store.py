# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Persistence of video watch progress.

The tracker talks to a ``ProgressStore``; production uses the Cassandra
implementation below. Upserts are keyed by the composite identity
(user_id, level_id, topic_id, video_id).
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

import structlog
from cassandra import DriverException, RequestExecutionException
from cassandra.cluster import NoHostAvailable

from .models import VideoProgress


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)

_DRIVER_ERRORS = (DriverException, RequestExecutionException, NoHostAvailable)


class ProgressStoreError(Exception):
    """The progress store could not complete an operation."""

    def __init__(self, message: str, code: str = "store_unavailable"):
        self.message = message
        self.code = code
        super().__init__(message)


class ProgressStore(Protocol):
    """Storage contract used by the watch progress tracker."""

    async def fetch(
        self, user_id: UUID, level_id: str, topic_id: int, video_id: str
    ) -> VideoProgress | None: ...

    async def upsert(self, record: VideoProgress) -> None: ...


class UnavailableProgressStore:
    """Stand-in used while storage is down: every call fails."""

    async def fetch(
        self, user_id: UUID, level_id: str, topic_id: int, video_id: str
    ) -> VideoProgress | None:
        raise ProgressStoreError("Progress storage is unavailable")

    async def upsert(self, record: VideoProgress) -> None:
        raise ProgressStoreError("Progress storage is unavailable")


class CassandraProgressStore:
    """Video progress rows in Cassandra."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._get_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.video_progress
            WHERE user_id = ? AND level_id = ? AND topic_id = ? AND video_id = ?
        """)

        self._get_user_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.video_progress
            WHERE user_id = ?
        """)

        # INSERT is an upsert in Cassandra: the primary key is the conflict key
        self._upsert_progress = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.video_progress
            (user_id, level_id, topic_id, video_id, progress_percentage,
             watch_time_seconds, actual_watch_time_seconds, completed,
             last_watched_at, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

    async def fetch(
        self, user_id: UUID, level_id: str, topic_id: int, video_id: str
    ) -> VideoProgress | None:
        """Get the saved progress for one video, if any."""
        try:
            result = await self.session.aexecute(
                self._get_progress, [user_id, level_id, topic_id, video_id]
            )
        except _DRIVER_ERRORS as e:
            raise ProgressStoreError(f"Failed to load progress: {e}") from e
        row = result.one()
        return VideoProgress.from_row(row) if row else None

    async def upsert(self, record: VideoProgress) -> None:
        """Create or overwrite the row for the record's identity."""
        now = datetime.now(UTC)
        try:
            await self.session.aexecute(
                self._upsert_progress,
                [
                    record.user_id,
                    record.level_id,
                    record.topic_id,
                    record.video_id,
                    record.progress_percentage,
                    record.watch_time_seconds,
                    record.actual_watch_time_seconds,
                    record.completed,
                    record.last_watched_at,
                    record.created_at or now,
                    now,
                ],
            )
        except _DRIVER_ERRORS as e:
            raise ProgressStoreError(f"Failed to save progress: {e}") from e

    async def list_for_user(self, user_id: UUID) -> list[VideoProgress]:
        """All progress rows of a user, most recently watched first."""
        try:
            rows = await self.session.aexecute(self._get_user_progress, [user_id])
        except _DRIVER_ERRORS as e:
            raise ProgressStoreError(f"Failed to list progress: {e}") from e
        records = [VideoProgress.from_row(row) for row in rows]
        records.sort(key=lambda r: r.last_watched_at, reverse=True)
        return records

    async def reset(self, existing: VideoProgress) -> VideoProgress:
        """Rewrite an existing row back to zero (rows are never deleted)."""
        record = VideoProgress(
            user_id=existing.user_id,
            level_id=existing.level_id,
            topic_id=existing.topic_id,
            video_id=existing.video_id,
            created_at=existing.created_at,
        )
        await self.upsert(record)
        logger.info("video_progress_reset", **record.identity.log_fields())
        return record
