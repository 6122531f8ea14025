"""Video watch progress module.

Provides:
- Live watch tracking with resume support (tracker)
- Progress persistence (store)
- Watch history and summaries (service)
"""

from .models import (
    PROGRESS_TABLES_CQL,
    VideoProgress,
    WatchIdentity,
)
from .tracker import (
    TrackerConfig,
    WatchProgressTracker,
    WatchSession,
    WatchSessionManager,
)


__all__ = [
    "PROGRESS_TABLES_CQL",
    "TrackerConfig",
    "VideoProgress",
    "WatchIdentity",
    "WatchProgressTracker",
    "WatchSession",
    "WatchSessionManager",
]
