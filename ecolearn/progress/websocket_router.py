"""WebSocket API for live watch progress tracking.

Provides:
- WS /ws/progress - Browser player reports playback, server tracks progress

The browser owns the actual player; it mirrors position samples and state
changes to the server, which runs one watch progress tracker per
connection and answers with progress updates and player commands.
"""

import asyncio
import contextlib
import json
from typing import Any
from uuid import UUID, uuid4

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from jose import JWTError
from pydantic import ValidationError

from ecolearn.auth.security import user_id_from_token
from ecolearn.config import get_settings
from ecolearn.core.context import set_user_id, set_watch_session_id
from ecolearn.core.logging import get_logger
from ecolearn.core.redis import progress_channel
from ecolearn.playback import PlaybackState, RemotePlaybackSurface

from .dependencies import get_progress_store
from .models import WatchIdentity
from .schemas import (
    CloseVideoMessage,
    CompletedEvent,
    OpenVideoMessage,
    ProgressEvent,
    SampleMessage,
    StateMessage,
)
from .store import ProgressStore, UnavailableProgressStore
from .tracker import TrackerConfig, WatchSessionManager


logger = get_logger(__name__)

router = APIRouter(tags=["progress-ws"])

PING_INTERVAL_SECONDS = 30


def authenticate_websocket(token: str) -> UUID | None:
    """Return the token's user id, or None if the token is not valid."""
    try:
        return user_id_from_token(token)
    except JWTError as e:
        logger.warning("websocket_auth_failed", error=str(e))
    return None


class WatchConnection:
    """One browser connection hosting at most one watched video at a time."""

    def __init__(
        self,
        websocket: WebSocket,
        store: ProgressStore | None,
        config: TrackerConfig,
        user_id: UUID | None = None,
        redis: Any = None,
    ) -> None:
        self.websocket = websocket
        self.user_id = user_id
        self.redis = redis
        # Without storage, saves fail and are logged; sampling continues
        self.tracking_enabled = store is not None
        self.manager = WatchSessionManager(
            store if store is not None else UnavailableProgressStore(),
            config,
            on_progress=self._send_progress,
            on_completed=self._send_completed,
        )
        self.surface: RemotePlaybackSurface | None = None
        self.disconnected = False
        self._send_lock = asyncio.Lock()

    async def send(self, message: dict[str, Any]) -> None:
        """Send one JSON message; sends from the sampler and handlers never interleave."""
        if self.disconnected:
            return
        async with self._send_lock:
            await self.websocket.send_json(message)

    async def send_error(self, code: str, message: str) -> None:
        await self.send({"type": "error", "code": code, "message": message})

    # ==========================================================================
    # Tracker callbacks
    # ==========================================================================

    async def _send_progress(self, percentage: int, completed: bool) -> None:
        await self.send(
            ProgressEvent(percentage=percentage, completed=completed).model_dump()
        )

    async def _send_completed(self, identity: WatchIdentity) -> None:
        event = CompletedEvent(
            level_id=identity.level_id,
            topic_id=identity.topic_id,
            video_id=identity.video_id,
        ).model_dump()
        await self.send(event)

        if self.redis is not None and identity.user_id is not None:
            try:
                await self.redis.publish(
                    progress_channel(str(identity.user_id)), json.dumps(event)
                )
            except Exception as e:
                logger.warning("progress_publish_failed", error=str(e))

    # ==========================================================================
    # Client messages
    # ==========================================================================

    async def handle(self, message: dict[str, Any]) -> None:
        """Dispatch one client message."""
        kind = message.get("type")
        try:
            if kind == "open":
                await self._open(OpenVideoMessage.model_validate(message))
            elif kind == "sample":
                self._sample(SampleMessage.model_validate(message))
            elif kind == "state":
                self._state(StateMessage.model_validate(message))
            elif kind == "close":
                CloseVideoMessage.model_validate(message)
                await self.close_video()
            elif kind == "ping":
                await self.send({"type": "pong"})
            elif kind == "pong":
                pass
            else:
                await self.send_error("unknown_message", f"Unknown type: {kind!r}")
        except ValidationError as e:
            await self.send_error("invalid_message", str(e.errors()[0]["msg"]))
        except ValueError as e:
            await self.send_error("invalid_message", str(e))

    async def _open(self, message: OpenVideoMessage) -> None:
        previous = self.surface
        surface = RemotePlaybackSurface()
        surface.report(message.current_time, message.duration)
        self.surface = surface

        identity = WatchIdentity(
            user_id=self.user_id,
            level_id=message.level_id,
            topic_id=message.topic_id,
            video_id=message.video_id,
        )
        # Tears down (and destroys) the previous surface before starting
        await self.manager.open(surface, identity)

        if previous is not None:
            await self._flush_commands(previous)
        await self._flush_commands(surface)

    def _sample(self, message: SampleMessage) -> None:
        if self.surface is None:
            raise ValueError("No video open")
        self.surface.report(message.current_time, message.duration)

    def _state(self, message: StateMessage) -> None:
        tracker = self.manager.current
        if self.surface is None or tracker is None:
            raise ValueError("No video open")
        state = PlaybackState.parse(message.state)
        self.surface.report(message.current_time, message.duration)
        tracker.on_playback_state_change(state)

    async def close_video(self) -> None:
        """Tear down the open video, if any."""
        surface, self.surface = self.surface, None
        await self.manager.close()
        if surface is not None:
            await self._flush_commands(surface)

    async def _flush_commands(self, surface: RemotePlaybackSurface) -> None:
        """Forward queued player commands (seek, destroy) to the browser."""
        while not surface.commands.empty():
            await self.send(surface.commands.get_nowait())

    # ==========================================================================
    # Connection loop
    # ==========================================================================

    async def run(self) -> None:
        """Receive messages until the client goes away."""
        await self.send(
            {
                "type": "connected",
                "user_id": str(self.user_id) if self.user_id else None,
                "tracking": self.tracking_enabled and self.user_id is not None,
            }
        )

        while True:
            try:
                message = await asyncio.wait_for(
                    self.websocket.receive_json(),
                    timeout=PING_INTERVAL_SECONDS,
                )
            except TimeoutError:
                await self.send({"type": "ping"})
                continue
            except json.JSONDecodeError:
                await self.send_error("invalid_message", "Messages must be JSON")
                continue

            if not isinstance(message, dict):
                await self.send_error("invalid_message", "Messages must be objects")
                continue
            await self.handle(message)


@router.websocket("/ws/progress")
async def progress_websocket(
    websocket: WebSocket,
    token: str | None = Query(None, description="JWT access token"),
) -> None:
    """WebSocket endpoint for watch progress tracking.

    Connect with: ws://host/ws/progress?token=<jwt_token>
    Without a token the session is anonymous: progress is reported but
    never saved.

    Messages you can send:
    - {"type": "open", "level_id", "topic_id", "video_id", "current_time", "duration"}
    - {"type": "sample", "current_time", "duration"}
    - {"type": "state", "state": "playing" | 1 | ..., "current_time", "duration"}
    - {"type": "close"}

    Messages received:
    - {"type": "progress", "percentage": N, "completed": bool}
    - {"type": "completed", ...} - once, when completion is first saved
    - {"type": "seek", "seconds": N, "allow_seek_ahead": true} - resume point
    - {"type": "destroy"} - player should be released
    - {"type": "error", "code": ..., "message": ...}
    """
    user_id = None
    if token:
        user_id = authenticate_websocket(token)
        if user_id is None:
            await websocket.close(code=4001, reason="Authentication failed")
            return

    await websocket.accept()
    set_user_id(user_id)
    set_watch_session_id(str(uuid4()))

    app_state = websocket.app.state
    store = get_progress_store(app_state)
    if store is None:
        logger.warning("progress_store_unavailable_for_websocket")

    connection = WatchConnection(
        websocket,
        store,
        TrackerConfig.from_settings(get_settings()),
        user_id=user_id,
        redis=getattr(app_state, "redis", None),
    )
    logger.info("watch_connection_opened", anonymous=user_id is None)

    try:
        await connection.run()
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning("watch_connection_error", error=str(e))
    finally:
        connection.disconnected = True
        # Final save still goes through even though the socket is gone
        with contextlib.suppress(Exception):
            await connection.close_video()
        logger.info("watch_connection_closed")
