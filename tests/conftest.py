"""Shared fixtures: fake player surface, in-memory progress store, API client."""

from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from ecolearn.config import get_settings
from ecolearn.playback import SurfaceNotReadyError
from ecolearn.progress.models import VideoProgress, WatchIdentity
from ecolearn.progress.store import ProgressStoreError


class FakeSurface:
    """Player whose position and duration are set by the test."""

    def __init__(self, position: float = 0.0, duration: float = 600.0):
        self.position = position
        self.duration = duration
        self.ready = True
        self.seeks: list[tuple[float, bool]] = []
        self.destroy_calls = 0

    def get_current_time(self) -> float:
        if not self.ready:
            raise SurfaceNotReadyError("player not ready")
        return self.position

    def get_duration(self) -> float:
        if not self.ready:
            raise SurfaceNotReadyError("player not ready")
        return self.duration

    def seek_to(self, seconds: float, allow_seek_ahead: bool) -> None:
        self.seeks.append((seconds, allow_seek_ahead))
        self.position = float(seconds)

    def destroy(self) -> None:
        self.destroy_calls += 1


class FakeStore:
    """In-memory progress store recording every call."""

    def __init__(self) -> None:
        self.rows: dict[tuple, VideoProgress] = {}
        self.fetch_calls: list[tuple] = []
        self.upserts: list[VideoProgress] = []
        self.fail_fetch = False
        self.fail_upsert = False

    @staticmethod
    def _key(user_id, level_id, topic_id, video_id) -> tuple:
        return (user_id, level_id, topic_id, video_id)

    def put(self, record: VideoProgress) -> None:
        key = self._key(
            record.user_id, record.level_id, record.topic_id, record.video_id
        )
        self.rows[key] = record

    async def fetch(self, user_id, level_id, topic_id, video_id):
        self.fetch_calls.append((user_id, level_id, topic_id, video_id))
        if self.fail_fetch:
            raise ProgressStoreError("fetch failed")
        return self.rows.get(self._key(user_id, level_id, topic_id, video_id))

    async def upsert(self, record: VideoProgress) -> None:
        if self.fail_upsert:
            raise ProgressStoreError("upsert failed")
        self.upserts.append(record)
        self.put(record)


@pytest.fixture
def user_id() -> UUID:
    """Test user ID."""
    return uuid4()


@pytest.fixture
def identity(user_id: UUID) -> WatchIdentity:
    """Identity of a signed-in viewer."""
    return WatchIdentity(
        user_id=user_id, level_id="fundamental-1", topic_id=3, video_id="abc123XYZ"
    )


@pytest.fixture
def anonymous_identity() -> WatchIdentity:
    """Identity of a viewer who is not signed in."""
    return WatchIdentity(
        user_id=None, level_id="fundamental-1", topic_id=3, video_id="abc123XYZ"
    )


@pytest.fixture
def surface() -> FakeSurface:
    return FakeSurface()


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


def make_token(user_id: UUID, **claims) -> str:
    """Sign an access token the way the auth backend does."""
    settings = get_settings()
    payload = {
        "sub": str(user_id),
        "aud": settings.auth_audience,
        "exp": datetime.now(UTC) + timedelta(hours=1),
        **claims,
    }
    return jwt.encode(payload, settings.auth_secret_key, algorithm=settings.auth_algorithm)


@pytest.fixture
def access_token(user_id: UUID) -> str:
    """Valid access token for ``user_id``."""
    return make_token(user_id)


@pytest.fixture
def client() -> Iterator[TestClient]:
    """Test client without storage (lifespan is not run)."""
    from ecolearn.main import app

    app.state.redis = None
    app.state.progress_store = None
    app.state.progress_service = None

    yield TestClient(app)

    app.state.redis = None
    app.state.progress_store = None
    app.state.progress_service = None


@pytest.fixture
def surface_factory() -> type[FakeSurface]:
    """Build extra surfaces when a test needs more than one."""
    return FakeSurface


@pytest.fixture
def token_factory():
    """Sign tokens with custom claims."""
    return make_token
