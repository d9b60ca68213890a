"""Exceptions raised by the watcher."""


class WatcherError(Exception):
    """Base class for every error raised by the watcher."""


class ConfigError(WatcherError):
    """Settings or the watch file could not be read."""


class PollError(WatcherError):
    """A poll of one repository failed.

    The driver catches these per repository so the other repositories
    are still polled in the same cycle.
    """

    def __init__(self, repo_name: str, message: str) -> None:
        super().__init__(f"{repo_name}: {message}")
        self.repo_name = repo_name


class MirrorInitError(PollError):
    """The local mirror could not be created or its initial fetch failed."""


class FetchError(PollError):
    """Fetching from the remote failed."""


class DiffSubprocessError(PollError):
    """`git diff` between two commits failed."""


class MirrorCorrupted(WatcherError):
    """The on-disk mirror does not point at the configured remote.

    Only raised while validating a mirror; `open_or_init` recovers from
    it by deleting the mirror and building a new one.
    """


class PublishError(WatcherError):
    """A publisher could not deliver a notification."""
