"""Repository change watcher core.

Keeps a bare mirror per watched repository, fetches it periodically and
turns branch advances into notifications for whoever is interested in
the paths that changed.
"""

from watcher.engine import ChangeDetectionEngine
from watcher.errors import (
    ConfigError,
    DiffSubprocessError,
    FetchError,
    MirrorCorrupted,
    MirrorInitError,
    PollError,
    PublishError,
    WatcherError,
)
from watcher.types import (
    BranchConfig,
    ChangeRecord,
    ChangeType,
    NotificationPayload,
    RepositoryConfig,
    WatchSet,
)

__all__ = [
    "BranchConfig",
    "ChangeDetectionEngine",
    "ChangeRecord",
    "ChangeType",
    "ConfigError",
    "DiffSubprocessError",
    "FetchError",
    "MirrorCorrupted",
    "MirrorInitError",
    "NotificationPayload",
    "PollError",
    "PublishError",
    "RepositoryConfig",
    "WatchSet",
    "WatcherError",
]
