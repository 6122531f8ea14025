"""Watch progress tracking for a single open video.

The tracker samples the playback surface once per interval while the
video plays, counts seconds of continuous forward playback, decides when
the video is complete and saves snapshots to the progress store.

Counting rule: a tick adds one second of watch time only when the position
moved forward by more than 0 and at most ``max_continuous_delta`` seconds
since the previous sample. Pauses (no movement) and seeks (jumps) add
nothing.

Nothing raised by the surface, the store or the host callbacks escapes the
tracker: progress saving is best effort and must never break playback.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

from ecolearn.core.periodic import PeriodicTask
from ecolearn.playback import PlaybackState, PlaybackSurface

from .models import (
    COMPLETION_PERCENT,
    COMPLETION_WATCH_RATIO,
    VideoProgress,
    WatchIdentity,
    is_completion_reached,
    percent_of,
)


if TYPE_CHECKING:
    from ecolearn.config.settings import Settings

    from .store import ProgressStore

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[int, bool], Awaitable[None] | None]
CompletedCallback = Callable[[WatchIdentity], Awaitable[None] | None]


def round_seconds(seconds: float) -> int:
    """Round a playback position to whole seconds, halves up."""
    return int(seconds + 0.5)


@dataclass(frozen=True)
class TrackerConfig:
    """Tuning knobs for the tracker."""

    sample_interval: float = 1.0
    max_continuous_delta: float = 2.0
    save_every_watch_seconds: int = 3
    completion_percent: int = COMPLETION_PERCENT
    completion_watch_ratio: float = COMPLETION_WATCH_RATIO
    # Wall-clock save while playing even if watch time stalls; 0 disables
    fallback_save_interval: float = 15.0

    @classmethod
    def from_settings(cls, settings: Settings) -> TrackerConfig:
        return cls(
            sample_interval=settings.tracker_sample_interval_seconds,
            max_continuous_delta=settings.tracker_max_continuous_delta_seconds,
            save_every_watch_seconds=settings.tracker_save_every_watch_seconds,
            completion_percent=settings.tracker_completion_percent,
            completion_watch_ratio=settings.tracker_completion_watch_ratio,
            fallback_save_interval=settings.tracker_fallback_save_interval_seconds,
        )


@dataclass
class WatchSession:
    """State held only while a video is open."""

    last_sampled_position: float = 0.0
    accumulated_watch_seconds: int = 0
    last_reported_percent: int = 0
    best_percent: int = 0
    completed: bool = False
    duration: float | None = None
    created_at: datetime | None = None


class WatchProgressTracker:
    """Observe one playback surface and persist watch progress for it.

    Args:
        surface: Player to sample; owned by the tracker until teardown
        store: Where progress rows are loaded from and saved to
        identity: User and video being tracked (anonymous disables saving)
        config: Cadences and thresholds
        on_progress: Called with (percentage, completed) on load and every tick
        on_completed: Called once when a save first records completion
        clock: Monotonic clock, used for the wall-clock fallback save
    """

    def __init__(
        self,
        surface: PlaybackSurface,
        store: ProgressStore,
        identity: WatchIdentity,
        *,
        config: TrackerConfig | None = None,
        on_progress: ProgressCallback | None = None,
        on_completed: CompletedCallback | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.surface = surface
        self.store = store
        self.identity = identity
        self.config = config or TrackerConfig()
        self.on_progress = on_progress
        self.on_completed = on_completed
        self.clock = clock

        self.session = WatchSession()
        self._sampler = PeriodicTask(
            self.sample,
            self.config.sample_interval,
            name=f"watch_sampler:{identity.video_id}",
        )
        self._pending_saves: set[asyncio.Task] = set()
        self._persisted_completed = False
        self._last_save_at = clock()
        self._closed = False
        self._log = logger.bind(**identity.log_fields())

    @property
    def is_sampling(self) -> bool:
        return self._sampler.is_running

    @property
    def is_closed(self) -> bool:
        return self._closed

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    async def initialize(self) -> None:
        """Load saved progress, resume the playhead and report the baseline."""
        record: VideoProgress | None = None
        if not self.identity.is_anonymous:
            try:
                record = await self.store.fetch(
                    self.identity.user_id,
                    self.identity.level_id,
                    self.identity.topic_id,
                    self.identity.video_id,
                )
            except Exception:
                self._log.exception("progress_load_failed")

        session = self.session
        if record is not None:
            session.last_reported_percent = record.progress_percentage
            session.best_percent = record.progress_percentage
            session.accumulated_watch_seconds = record.actual_watch_time_seconds
            session.completed = (
                record.completed
                or record.progress_percentage >= self.config.completion_percent
            )
            session.created_at = record.created_at
            self._persisted_completed = session.completed

            if record.watch_time_seconds > 0:
                try:
                    self.surface.seek_to(record.watch_time_seconds, True)
                    session.last_sampled_position = float(record.watch_time_seconds)
                except Exception:
                    self._log.warning("resume_seek_failed", exc_info=True)

        self._log.info(
            "watch_session_initialized",
            resumed=record is not None,
            progress_percentage=session.last_reported_percent,
            watch_seconds=session.accumulated_watch_seconds,
            completed=session.completed,
        )
        await self._emit_progress(session.last_reported_percent, session.completed)

    def on_playback_state_change(self, state: PlaybackState) -> None:
        """Single entry point for player state notifications."""
        if self._closed:
            return

        if state is PlaybackState.PLAYING:
            if self.identity.is_anonymous:
                return
            self._start_sampling()
            return

        self._sampler.stop()
        self._save_current_position()

    async def teardown(self) -> None:
        """Stop sampling, save one last time, release the surface."""
        if self._closed:
            return
        self._closed = True

        await self._sampler.aclose()
        self._save_current_position()
        await self.wait_for_saves()

        try:
            self.surface.destroy()
        except Exception:
            self._log.warning("surface_destroy_failed", exc_info=True)

        self._log.info(
            "watch_session_closed",
            progress_percentage=self.session.best_percent,
            watch_seconds=self.session.accumulated_watch_seconds,
            completed=self.session.completed,
        )

    async def wait_for_saves(self) -> None:
        """Wait for saves already in flight."""
        pending = [task for task in self._pending_saves if not task.done()]
        while pending:
            await asyncio.gather(*pending, return_exceptions=True)
            pending = [task for task in self._pending_saves if not task.done()]

    # ==========================================================================
    # Sampling
    # ==========================================================================

    def _start_sampling(self) -> None:
        try:
            self.session.last_sampled_position = self.surface.get_current_time()
        except Exception as e:
            self._log.debug("sampling_baseline_unavailable", reason=str(e))
        self._last_save_at = self.clock()
        self._sampler.start()

    async def sample(self) -> None:
        """One sampling tick."""
        if self._closed or self.identity.is_anonymous:
            return

        try:
            position = self.surface.get_current_time()
            duration = self.surface.get_duration()
        except Exception as e:
            self._log.debug("playback_sample_skipped", reason=str(e))
            return

        # Duration not known yet
        if not duration or duration <= 0 or position is None or position < 0:
            return

        session = self.session
        session.duration = duration
        percent = percent_of(position, duration)
        session.last_reported_percent = percent
        session.best_percent = max(session.best_percent, percent)

        delta = position - session.last_sampled_position
        counted = 0 < delta <= self.config.max_continuous_delta
        if counted:
            session.accumulated_watch_seconds += 1
        session.last_sampled_position = position

        # Sticky: once reached, completion is never reported as lost
        session.completed = session.completed or self._completion_reached(
            percent, session.accumulated_watch_seconds, duration
        )

        await self._emit_progress(percent, session.completed)

        due = (
            counted
            and session.accumulated_watch_seconds
            % self.config.save_every_watch_seconds
            == 0
        )
        fallback = self.config.fallback_save_interval
        if not due and fallback > 0:
            due = self.clock() - self._last_save_at >= fallback
        if due:
            self.persist(percent, position, session.accumulated_watch_seconds)

    def _completion_reached(
        self, percent: int, watch_seconds: int, duration: float | None
    ) -> bool:
        return is_completion_reached(
            percent,
            watch_seconds,
            duration,
            completion_percent=self.config.completion_percent,
            watch_ratio=self.config.completion_watch_ratio,
        )

    # ==========================================================================
    # Persistence
    # ==========================================================================

    def persist(
        self, percent: int, position_seconds: float, watch_seconds: int
    ) -> asyncio.Task | None:
        """Schedule a save of the current snapshot (fire-and-forget).

        Returns:
            The save task, or None for anonymous sessions
        """
        if self.identity.is_anonymous:
            return None

        session = self.session
        now = datetime.now(UTC)
        session.best_percent = max(session.best_percent, percent)
        session.completed = session.completed or self._completion_reached(
            percent, watch_seconds, session.duration
        )
        if session.created_at is None:
            session.created_at = now

        record = VideoProgress(
            user_id=self.identity.user_id,
            level_id=self.identity.level_id,
            topic_id=self.identity.topic_id,
            video_id=self.identity.video_id,
            progress_percentage=session.best_percent,
            watch_time_seconds=round_seconds(position_seconds),
            actual_watch_time_seconds=watch_seconds,
            completed=session.completed,
            last_watched_at=now,
            created_at=session.created_at,
        )

        self._last_save_at = self.clock()
        task = asyncio.create_task(self._save(record))
        self._pending_saves.add(task)
        task.add_done_callback(self._pending_saves.discard)
        return task

    def _save_current_position(self) -> asyncio.Task | None:
        """Final save using the position right now (pause, end, teardown)."""
        if self.identity.is_anonymous:
            return None

        try:
            position = self.surface.get_current_time()
            duration = self.surface.get_duration()
        except Exception as e:
            self._log.debug("final_sample_skipped", reason=str(e))
            return None

        if not duration or duration <= 0 or not position:
            return None

        self.session.duration = duration
        percent = percent_of(position, duration)
        self.session.last_reported_percent = percent
        return self.persist(percent, position, self.session.accumulated_watch_seconds)

    async def _save(self, record: VideoProgress) -> None:
        try:
            await self.store.upsert(record)
        except Exception:
            self._log.warning(
                "progress_save_failed",
                progress_percentage=record.progress_percentage,
                exc_info=True,
            )
            return

        self._log.debug(
            "progress_saved",
            progress_percentage=record.progress_percentage,
            watch_time_seconds=record.watch_time_seconds,
            actual_watch_time_seconds=record.actual_watch_time_seconds,
        )

        # Only the first save that records completion announces it
        if record.completed and not self._persisted_completed:
            self._persisted_completed = True
            self._log.info("video_completed")
            await self._call(self.on_completed, self.identity)

    # ==========================================================================
    # Host callbacks
    # ==========================================================================

    async def _emit_progress(self, percent: int, completed: bool) -> None:
        await self._call(self.on_progress, percent, completed)

    async def _call(self, callback: Callable[..., Any] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception:
            self._log.exception("tracker_callback_failed")


class WatchSessionManager:
    """Keeps at most one open tracker for a host (page, connection).

    Opening a new video fully tears down the previous session first, so two
    sessions of the same host never overlap.
    """

    def __init__(
        self,
        store: ProgressStore,
        config: TrackerConfig | None = None,
        on_progress: ProgressCallback | None = None,
        on_completed: CompletedCallback | None = None,
    ) -> None:
        self.store = store
        self.config = config or TrackerConfig()
        self.on_progress = on_progress
        self.on_completed = on_completed
        self._current: WatchProgressTracker | None = None

    @property
    def current(self) -> WatchProgressTracker | None:
        return self._current

    async def open(
        self, surface: PlaybackSurface, identity: WatchIdentity
    ) -> WatchProgressTracker:
        """Tear down the current session and start tracking ``identity``."""
        await self.close()

        tracker = WatchProgressTracker(
            surface,
            self.store,
            identity,
            config=self.config,
            on_progress=self.on_progress,
            on_completed=self.on_completed,
        )
        self._current = tracker
        await tracker.initialize()
        return tracker

    async def close(self) -> None:
        """Tear down the current session, if any."""
        tracker, self._current = self._current, None
        if tracker is not None:
            await tracker.teardown()
