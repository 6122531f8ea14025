"""Video playback surface abstractions."""

from .surface import (
    PlaybackState,
    PlaybackSurface,
    RemotePlaybackSurface,
    SurfaceNotReadyError,
)


__all__ = [
    "PlaybackState",
    "PlaybackSurface",
    "RemotePlaybackSurface",
    "SurfaceNotReadyError",
]
