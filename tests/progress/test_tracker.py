"""Tests for the watch progress tracker.

Tests cover:
- Counting continuous playback one second per tick
- Save cadence (every 3 counted seconds, wall-clock fallback)
- Dual completion rule and the single completion notification
- Resume from saved progress
- Pause, teardown and anonymous sessions
- Failures of the store, the surface and host callbacks
"""

import asyncio
from dataclasses import replace

import pytest

from ecolearn.playback import PlaybackState
from ecolearn.progress.models import VideoProgress
from ecolearn.progress.tracker import (
    TrackerConfig,
    WatchProgressTracker,
    WatchSessionManager,
    round_seconds,
)


class Recorder:
    """Collects host callback invocations."""

    def __init__(self) -> None:
        self.progress: list[tuple[int, bool]] = []
        self.completed: list = []

    async def on_progress(self, percentage: int, completed: bool) -> None:
        self.progress.append((percentage, completed))

    def on_completed(self, identity) -> None:
        self.completed.append(identity)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def config() -> TrackerConfig:
    """Default cadences with the wall-clock fallback disabled."""
    return TrackerConfig(fallback_save_interval=0)


@pytest.fixture
def make_tracker(surface, store, identity, config, recorder):
    def _make(**overrides) -> WatchProgressTracker:
        kwargs = {
            "surface": surface,
            "store": store,
            "identity": identity,
            "config": config,
            "on_progress": recorder.on_progress,
            "on_completed": recorder.on_completed,
        }
        kwargs.update(overrides)
        return WatchProgressTracker(
            kwargs.pop("surface"),
            kwargs.pop("store"),
            kwargs.pop("identity"),
            **kwargs,
        )

    return _make


async def play_to(tracker: WatchProgressTracker, surface, *positions: float) -> None:
    """Run one sampling tick per position."""
    for position in positions:
        surface.position = position
        await tracker.sample()


def saved_record(identity, **values) -> VideoProgress:
    return VideoProgress(
        user_id=identity.user_id,
        level_id=identity.level_id,
        topic_id=identity.topic_id,
        video_id=identity.video_id,
        **values,
    )


# ==============================================================================
# Counting
# ==============================================================================


class TestWatchTimeCounting:
    """Tests for the one-second-per-tick counting rule."""

    @pytest.mark.asyncio
    async def test_forward_movement_counts_one_second(self, make_tracker, surface):
        """Deltas in (0, 2] add exactly one second per tick."""
        tracker = make_tracker()
        await tracker.initialize()

        await play_to(tracker, surface, 1.0)
        assert tracker.session.accumulated_watch_seconds == 1

        await play_to(tracker, surface, 2.5)
        assert tracker.session.accumulated_watch_seconds == 2

    @pytest.mark.asyncio
    async def test_delta_of_exactly_two_counts(self, make_tracker, surface):
        """Upper bound of the continuous window is inclusive."""
        tracker = make_tracker()
        await tracker.initialize()

        await play_to(tracker, surface, 2.0)
        assert tracker.session.accumulated_watch_seconds == 1

    @pytest.mark.asyncio
    async def test_no_movement_does_not_count(self, make_tracker, surface):
        """A paused player (delta 0) adds nothing."""
        tracker = make_tracker()
        await tracker.initialize()

        await play_to(tracker, surface, 1.0, 1.0, 1.0)
        assert tracker.session.accumulated_watch_seconds == 1

    @pytest.mark.asyncio
    async def test_forward_seek_does_not_count(self, make_tracker, surface):
        """Jumping ahead more than 2 seconds adds nothing."""
        tracker = make_tracker()
        await tracker.initialize()

        await play_to(tracker, surface, 1.0, 60.0)
        assert tracker.session.accumulated_watch_seconds == 1
        assert tracker.session.last_sampled_position == 60.0

    @pytest.mark.asyncio
    async def test_backward_seek_does_not_count(self, make_tracker, surface):
        """Negative deltas add nothing, playback from the new point counts again."""
        tracker = make_tracker()
        await tracker.initialize()

        await play_to(tracker, surface, 1.0, 2.0, 0.5)
        assert tracker.session.accumulated_watch_seconds == 2

        await play_to(tracker, surface, 1.5)
        assert tracker.session.accumulated_watch_seconds == 3

    @pytest.mark.asyncio
    async def test_unknown_duration_skips_tick(self, make_tracker, surface, recorder):
        """Ticks are ignored until the player knows the duration."""
        surface.duration = 0
        tracker = make_tracker()
        await tracker.initialize()

        await play_to(tracker, surface, 1.0)
        assert tracker.session.accumulated_watch_seconds == 0
        assert recorder.progress == [(0, False)]

    @pytest.mark.asyncio
    async def test_progress_reported_every_tick(self, make_tracker, surface, recorder):
        """Each tick reports the rounded position percentage."""
        surface.duration = 300
        tracker = make_tracker()
        await tracker.initialize()

        await play_to(tracker, surface, 1.0, 2.0, 3.0)
        assert recorder.progress == [(0, False), (0, False), (1, False), (1, False)]


# ==============================================================================
# Save cadence
# ==============================================================================


class TestSaveCadence:
    """Tests for when snapshots are persisted."""

    @pytest.mark.asyncio
    async def test_saves_every_three_counted_seconds(
        self, make_tracker, surface, store
    ):
        """Saves happen when the counter reaches 3 and 6."""
        tracker = make_tracker()
        await tracker.initialize()

        await play_to(tracker, surface, 1, 2)
        await tracker.wait_for_saves()
        assert store.upserts == []

        await play_to(tracker, surface, 3)
        await tracker.wait_for_saves()
        assert [r.actual_watch_time_seconds for r in store.upserts] == [3]

        await play_to(tracker, surface, 4, 5, 6)
        await tracker.wait_for_saves()
        assert [r.actual_watch_time_seconds for r in store.upserts] == [3, 6]
        assert store.upserts[-1].watch_time_seconds == 6

    @pytest.mark.asyncio
    async def test_uncounted_tick_does_not_save_again(
        self, make_tracker, surface, store
    ):
        """A multiple of 3 only triggers a save on the tick that reached it."""
        tracker = make_tracker()
        await tracker.initialize()

        await play_to(tracker, surface, 1, 2, 3, 3, 3, 90)
        await tracker.wait_for_saves()
        assert len(store.upserts) == 1

    @pytest.mark.asyncio
    async def test_fallback_save_by_wall_clock(self, make_tracker, surface, store):
        """While playing without counted progress, a save still happens every 15s."""
        now = [0.0]
        tracker = make_tracker(
            config=TrackerConfig(fallback_save_interval=15),
            clock=lambda: now[0],
        )
        await tracker.initialize()

        await play_to(tracker, surface, 10)
        now[0] = 5.0
        await play_to(tracker, surface, 10)
        await tracker.wait_for_saves()
        assert store.upserts == []

        now[0] = 16.0
        await play_to(tracker, surface, 10)
        await tracker.wait_for_saves()
        assert len(store.upserts) == 1
        assert store.upserts[0].watch_time_seconds == 10

    @pytest.mark.asyncio
    async def test_saved_position_is_rounded(self, make_tracker, surface, store):
        """Resume position is stored as whole seconds, halves up."""
        tracker = make_tracker()
        await tracker.initialize()

        await play_to(tracker, surface, 1.2, 2.4, 3.5)
        await tracker.wait_for_saves()
        assert store.upserts[0].watch_time_seconds == 4

    def test_round_seconds(self):
        """Halves round up."""
        assert round_seconds(2.5) == 3
        assert round_seconds(2.49) == 2
        assert round_seconds(0) == 0

    @pytest.mark.asyncio
    async def test_persisted_percent_never_decreases(
        self, make_tracker, surface, store, identity
    ):
        """Rewatching an earlier part keeps the best percentage saved."""
        store.put(
            saved_record(
                identity,
                progress_percentage=80,
                watch_time_seconds=480,
                actual_watch_time_seconds=100,
            )
        )
        tracker = make_tracker()
        await tracker.initialize()

        await tracker.persist(5, 30, 100)
        assert store.upserts[-1].progress_percentage == 80
        assert store.upserts[-1].watch_time_seconds == 30

    @pytest.mark.asyncio
    async def test_created_at_kept_from_saved_row(
        self, make_tracker, store, identity
    ):
        """Every save of a session carries the original creation time."""
        existing = saved_record(identity, watch_time_seconds=10)
        existing.created_at = existing.last_watched_at
        store.put(existing)
        tracker = make_tracker()
        await tracker.initialize()

        await tracker.persist(2, 12, 1)
        assert store.upserts[-1].created_at == existing.created_at


# ==============================================================================
# Completion
# ==============================================================================


class TestCompletion:
    """Tests for the dual completion rule and its notification."""

    @pytest.mark.asyncio
    async def test_completed_by_position(self, make_tracker, surface, recorder):
        """Duration 200 at position 190 is 95% and complete."""
        surface.duration = 200
        tracker = make_tracker()
        await tracker.initialize()

        await play_to(tracker, surface, 190)
        assert recorder.progress[-1] == (95, True)
        assert tracker.session.completed is True

    @pytest.mark.asyncio
    async def test_completed_by_watch_time(
        self, make_tracker, surface, store, identity, recorder
    ):
        """80% of the duration actually watched completes a video at 61%."""
        surface.duration = 100
        store.put(
            saved_record(
                identity,
                progress_percentage=60,
                watch_time_seconds=60,
                actual_watch_time_seconds=79,
            )
        )
        tracker = make_tracker()
        await tracker.initialize()
        assert recorder.progress == [(60, False)]

        await play_to(tracker, surface, 61)
        assert tracker.session.accumulated_watch_seconds == 80
        assert recorder.progress[-1] == (61, True)

    @pytest.mark.asyncio
    async def test_not_completed_below_both_thresholds(
        self, make_tracker, surface, recorder
    ):
        """94% with little counted watch time is not complete."""
        surface.duration = 100
        tracker = make_tracker()
        await tracker.initialize()

        await play_to(tracker, surface, 93.5, 94)
        assert recorder.progress[-1] == (94, False)

    @pytest.mark.asyncio
    async def test_completion_is_sticky(self, make_tracker, surface, store, recorder):
        """Seeking back after completion keeps the video complete."""
        surface.duration = 200
        tracker = make_tracker()
        await tracker.initialize()

        await play_to(tracker, surface, 190, 10)
        assert recorder.progress[-1] == (5, True)

        await tracker.teardown()
        assert store.upserts[-1].completed is True
        assert store.upserts[-1].progress_percentage == 95

    @pytest.mark.asyncio
    async def test_completion_notified_once(
        self, make_tracker, surface, identity, recorder
    ):
        """Only the first save recording completion notifies the host."""
        surface.duration = 200
        tracker = make_tracker()
        await tracker.initialize()

        await tracker.persist(96, 192, 10)
        await tracker.persist(97, 194, 11)
        await tracker.persist(98, 196, 12)

        assert recorder.completed == [identity]

    @pytest.mark.asyncio
    async def test_already_completed_video_not_notified(
        self, make_tracker, surface, store, identity, recorder
    ):
        """A video saved as complete before this session never re-notifies."""
        store.put(
            saved_record(
                identity,
                progress_percentage=100,
                watch_time_seconds=600,
                actual_watch_time_seconds=590,
                completed=True,
            )
        )
        tracker = make_tracker()
        await tracker.initialize()
        assert recorder.progress == [(100, True)]

        await tracker.persist(100, 600, 590)
        assert recorder.completed == []

    @pytest.mark.asyncio
    async def test_failed_save_does_not_notify(
        self, make_tracker, surface, store, recorder
    ):
        """Completion is announced only once it is actually saved."""
        surface.duration = 200
        tracker = make_tracker()
        await tracker.initialize()

        store.fail_upsert = True
        await tracker.persist(96, 192, 10)
        assert recorder.completed == []

        store.fail_upsert = False
        await tracker.persist(96, 192, 11)
        assert len(recorder.completed) == 1


# ==============================================================================
# Resume
# ==============================================================================


class TestResume:
    """Tests for loading saved progress on open."""

    @pytest.mark.asyncio
    async def test_seeks_to_saved_position(
        self, make_tracker, surface, store, identity, recorder
    ):
        """A saved position of 120s resumes the player at 120s."""
        store.put(
            saved_record(
                identity,
                progress_percentage=20,
                watch_time_seconds=120,
                actual_watch_time_seconds=110,
            )
        )
        tracker = make_tracker()
        await tracker.initialize()

        assert surface.seeks == [(120, True)]
        assert tracker.session.last_sampled_position == 120.0
        assert tracker.session.accumulated_watch_seconds == 110
        assert recorder.progress == [(20, False)]

    @pytest.mark.asyncio
    async def test_resume_does_not_count_the_seek(
        self, make_tracker, surface, store, identity
    ):
        """Playback right after the resume seek counts normally."""
        store.put(saved_record(identity, watch_time_seconds=120))
        tracker = make_tracker()
        await tracker.initialize()

        await play_to(tracker, surface, 121)
        assert tracker.session.accumulated_watch_seconds == 1

    @pytest.mark.asyncio
    async def test_no_seek_without_saved_position(self, make_tracker, surface, store):
        """New videos start from the beginning."""
        tracker = make_tracker()
        await tracker.initialize()

        assert surface.seeks == []
        assert store.fetch_calls

    @pytest.mark.asyncio
    async def test_load_failure_starts_fresh(
        self, make_tracker, surface, store, recorder
    ):
        """If loading fails the session starts from zero."""
        store.fail_fetch = True
        tracker = make_tracker()
        await tracker.initialize()

        assert recorder.progress == [(0, False)]
        assert surface.seeks == []


# ==============================================================================
# Lifecycle
# ==============================================================================


class TestLifecycle:
    """Tests for playback state changes and teardown."""

    @pytest.mark.asyncio
    async def test_pause_stops_sampling_and_saves(self, make_tracker, surface, store):
        """Pausing saves the current position and stops the loop."""
        tracker = make_tracker()
        await tracker.initialize()

        tracker.on_playback_state_change(PlaybackState.PLAYING)
        assert tracker.is_sampling

        surface.position = 40
        tracker.on_playback_state_change(PlaybackState.PAUSED)
        await tracker.wait_for_saves()

        assert not tracker.is_sampling
        assert len(store.upserts) == 1
        assert store.upserts[0].watch_time_seconds == 40
        await tracker.teardown()

    @pytest.mark.asyncio
    async def test_teardown_while_paused_saves_once(
        self, make_tracker, surface, store
    ):
        """Teardown issues exactly one final save with the last known values."""
        tracker = make_tracker()
        await tracker.initialize()
        await play_to(tracker, surface, 1, 2)

        surface.position = 2
        tracker.on_playback_state_change(PlaybackState.PAUSED)
        await tracker.wait_for_saves()
        saves_before = len(store.upserts)

        await tracker.teardown()
        assert len(store.upserts) == saves_before + 1
        assert store.upserts[-1].actual_watch_time_seconds == 2
        assert store.upserts[-1].watch_time_seconds == 2

    @pytest.mark.asyncio
    async def test_teardown_at_position_zero_skips_save(
        self, make_tracker, surface, store
    ):
        """Nothing is saved when the video never started."""
        tracker = make_tracker()
        await tracker.initialize()

        await tracker.teardown()
        assert store.upserts == []

    @pytest.mark.asyncio
    async def test_teardown_is_idempotent(self, make_tracker, surface, store):
        """A second teardown neither saves nor destroys again."""
        tracker = make_tracker()
        await tracker.initialize()
        surface.position = 30

        await tracker.teardown()
        await tracker.teardown()

        assert len(store.upserts) == 1
        assert surface.destroy_calls == 1
        assert tracker.is_closed

    @pytest.mark.asyncio
    async def test_restarting_playback_keeps_one_loop(self, make_tracker):
        """Rapid play/play cancels the previous sampling loop."""
        tracker = make_tracker()
        await tracker.initialize()

        tracker.on_playback_state_change(PlaybackState.PLAYING)
        first = tracker._sampler._task
        tracker.on_playback_state_change(PlaybackState.PLAYING)
        second = tracker._sampler._task
        await asyncio.sleep(0)

        assert first is not second
        assert first.cancelled()
        assert not second.done()
        await tracker.teardown()
        assert second.done()

    @pytest.mark.asyncio
    async def test_sampling_loop_ticks(self, make_tracker, surface, store):
        """The running loop samples on its own."""
        tracker = make_tracker(config=TrackerConfig(sample_interval=0.01))
        await tracker.initialize()

        tracker.on_playback_state_change(PlaybackState.PLAYING)
        for position in (1, 2, 3):
            surface.position = position
            await asyncio.sleep(0.03)

        assert tracker.session.accumulated_watch_seconds >= 1
        await tracker.teardown()

    @pytest.mark.asyncio
    async def test_state_change_after_teardown_ignored(self, make_tracker):
        """A closed tracker never restarts sampling."""
        tracker = make_tracker()
        await tracker.initialize()
        await tracker.teardown()

        tracker.on_playback_state_change(PlaybackState.PLAYING)
        assert not tracker.is_sampling


# ==============================================================================
# Anonymous sessions
# ==============================================================================


class TestAnonymousSession:
    """Tests for viewers without an account."""

    @pytest.mark.asyncio
    async def test_reports_zero_and_never_touches_store(
        self, make_tracker, anonymous_identity, surface, store, recorder
    ):
        """Anonymous viewers get a zero baseline and nothing is stored."""
        tracker = make_tracker(identity=anonymous_identity)
        await tracker.initialize()

        tracker.on_playback_state_change(PlaybackState.PLAYING)
        assert not tracker.is_sampling

        await play_to(tracker, surface, 1, 2, 3)
        surface.position = 50
        tracker.on_playback_state_change(PlaybackState.PAUSED)
        await tracker.teardown()

        assert recorder.progress == [(0, False)]
        assert store.fetch_calls == []
        assert store.upserts == []
        assert tracker.persist(50, 100, 10) is None


# ==============================================================================
# Failures
# ==============================================================================


class TestFailures:
    """Tests that failures never escape the tracker."""

    @pytest.mark.asyncio
    async def test_store_failure_is_swallowed(self, make_tracker, surface, store):
        """A failing save is logged and the session keeps going."""
        store.fail_upsert = True
        tracker = make_tracker()
        await tracker.initialize()

        await play_to(tracker, surface, 1, 2, 3)
        await tracker.wait_for_saves()
        await play_to(tracker, surface, 4)

        assert tracker.session.accumulated_watch_seconds == 4
        await tracker.teardown()

    @pytest.mark.asyncio
    async def test_surface_error_skips_tick(self, make_tracker, surface, recorder):
        """If the player cannot answer, the tick does nothing."""
        tracker = make_tracker()
        await tracker.initialize()

        surface.ready = False
        await play_to(tracker, surface, 1)

        assert tracker.session.accumulated_watch_seconds == 0
        assert recorder.progress == [(0, False)]

    @pytest.mark.asyncio
    async def test_callback_error_is_swallowed(self, make_tracker, surface):
        """A failing host callback does not break sampling."""

        def broken(*args):
            raise RuntimeError("ui gone")

        tracker = make_tracker(on_progress=broken)
        await tracker.initialize()
        await play_to(tracker, surface, 1)

        assert tracker.session.accumulated_watch_seconds == 1


# ==============================================================================
# Session manager
# ==============================================================================


class TestWatchSessionManager:
    """Tests for switching between videos."""

    @pytest.mark.asyncio
    async def test_open_tears_down_previous_session(
        self, store, identity, config, surface_factory
    ):
        """Opening another video closes and destroys the previous one first."""
        manager = WatchSessionManager(store, config)
        first_surface = surface_factory(position=30)
        second_surface = surface_factory()

        first = await manager.open(first_surface, identity)
        other = replace(identity, video_id="other-video")
        second = await manager.open(second_surface, other)

        assert first.is_closed
        assert first_surface.destroy_calls == 1
        assert manager.current is second
        assert not second.is_closed
        assert [r.video_id for r in store.upserts] == [identity.video_id]

    @pytest.mark.asyncio
    async def test_close_without_session(self, store, config):
        """Closing with nothing open is a no-op."""
        manager = WatchSessionManager(store, config)
        await manager.close()
        assert manager.current is None
