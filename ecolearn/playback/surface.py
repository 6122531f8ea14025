"""Video playback surface contract.

A surface is whatever renders the video (an embedded IFrame player in the
browser, reached here through a websocket). The tracker only needs to read
position and duration, request a seek and release the surface when done.
"""

from __future__ import annotations

import asyncio
from enum import IntEnum
from typing import Any, Protocol, runtime_checkable


class PlaybackState(IntEnum):
    """Player states, numbered as the YouTube IFrame API reports them."""

    UNSTARTED = -1
    ENDED = 0
    PLAYING = 1
    PAUSED = 2
    BUFFERING = 3
    CUED = 5

    @classmethod
    def parse(cls, value: int | str) -> PlaybackState:
        """Accept the numeric code or the (case-insensitive) state name.

        Raises:
            ValueError: If the value names no known state
        """
        if isinstance(value, str):
            name = value.strip().upper()
            if name in cls.__members__:
                return cls[name]
            try:
                value = int(name)
            except ValueError:
                raise ValueError(f"Unknown playback state: {value!r}") from None
        return cls(value)


class SurfaceNotReadyError(Exception):
    """The surface cannot answer position/duration queries yet."""


@runtime_checkable
class PlaybackSurface(Protocol):
    """What the watch progress tracker consumes from a video player."""

    def get_current_time(self) -> float:
        """Current playback position in seconds."""
        ...

    def get_duration(self) -> float:
        """Total duration in seconds (0 while unknown)."""
        ...

    def seek_to(self, seconds: float, allow_seek_ahead: bool) -> None:
        """Move the playhead."""
        ...

    def destroy(self) -> None:
        """Release the player."""
        ...


class RemotePlaybackSurface:
    """Surface mirrored from samples reported by a remote client.

    The client pushes ``report()`` updates; reads answer from the latest
    report. Seeks and destroy cannot be executed locally, so they are
    queued as outgoing commands for the connection that owns the surface.
    """

    def __init__(self) -> None:
        self._current_time: float | None = None
        self._duration: float | None = None
        self._destroyed = False
        self.commands: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    @property
    def is_destroyed(self) -> bool:
        return self._destroyed

    def report(self, current_time: float | None, duration: float | None) -> None:
        """Record the latest position/duration sent by the client."""
        if current_time is not None:
            self._current_time = max(0.0, float(current_time))
        if duration is not None:
            self._duration = float(duration)

    def get_current_time(self) -> float:
        if self._destroyed or self._current_time is None:
            raise SurfaceNotReadyError("No playback position reported yet")
        return self._current_time

    def get_duration(self) -> float:
        if self._destroyed:
            raise SurfaceNotReadyError("Surface destroyed")
        return self._duration or 0.0

    def seek_to(self, seconds: float, allow_seek_ahead: bool) -> None:
        if self._destroyed:
            return
        # Optimistic: the next client report confirms or corrects it
        self._current_time = float(seconds)
        self.commands.put_nowait(
            {"type": "seek", "seconds": seconds, "allow_seek_ahead": allow_seek_ahead}
        )

    def destroy(self) -> None:
        if self._destroyed:
            return
        self._destroyed = True
        self.commands.put_nowait({"type": "destroy"})
