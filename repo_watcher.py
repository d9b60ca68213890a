"""Watches git repositories for branch changes, sends Discord webhooks.

Periodically fetches the repositories listed in the watch file into
local bare mirrors. When a tracked branch moves, the files changed
between the last seen commit and the new one are listed, filtered
against the branch's path patterns and, if anything interesting
changed, posted to a Discord webhook. The last seen commit of each
branch is written back to the watch file after every cycle so changes
are not reported twice.

Example watch file:

    {
      "repos": {
        "demo": {
          "url": "https://github.com/owner/demo.git",
          "branches": {
            "main": {"files": ["src", "docs/*.md"]},
            "release": {}
          }
        }
      }
    }
"""

from __future__ import annotations

import logging
import signal
import sys
import threading
from typing import TYPE_CHECKING, Optional

from dotenv import load_dotenv

from watcher.config import Settings, load_watch_set, save_watch_set
from watcher.engine import ChangeDetectionEngine
from watcher.errors import ConfigError
from watcher.logging import configure_logging
from watcher.notify import DiscordPublisher

if TYPE_CHECKING:
    from types import FrameType

    from watcher.types import WatchSet

shutdown_event = threading.Event()

logger = logging.getLogger("watcher.main")


def handle_shutdown(_signum: int, _frame: Optional[FrameType]) -> None:
    """Gracefully handle shutdown signals (SIGTERM, SIGINT).

    Parameters
    ----------
    _signum : int
        The signal number.
    _frame : Optional[FrameType]
        The current stack frame.

    """
    shutdown_event.set()
    logger.info("Shutdown signal received, stopping monitor...")


def run_cycle(
    engine: ChangeDetectionEngine,
    watch_set: WatchSet,
    settings: Settings,
) -> int:
    """Poll every repository once and persist the watermarks.

    Returns
    -------
    int
        The number of repositories whose poll failed.

    """
    logger.debug("Checking %d repositories for changes", len(watch_set))
    results = engine.poll_all(max_workers=settings.max_workers)
    save_watch_set(watch_set, settings.watch_file)
    return sum(1 for error in results.values() if error is not None)


def monitor(
    engine: ChangeDetectionEngine,
    watch_set: WatchSet,
    settings: Settings,
) -> None:
    """Poll until a shutdown signal is received."""
    logger.info("Starting repository monitoring...")
    while not shutdown_event.is_set():
        failures = run_cycle(engine, watch_set, settings)
        if failures:
            logger.warning("%d of %d repositories failed to poll", failures, len(watch_set))
        shutdown_event.wait(settings.poll_interval_seconds)

    # Clean shutdown: save state and exit
    save_watch_set(watch_set, settings.watch_file)
    logger.info("Repository watcher exited cleanly")


def main() -> int:
    signal.signal(signal.SIGTERM, handle_shutdown)
    signal.signal(signal.SIGINT, handle_shutdown)

    load_dotenv()
    configure_logging()

    try:
        settings = Settings.from_env()
        watch_set = load_watch_set(settings.watch_file)
    except ConfigError:
        logger.critical("Invalid configuration", exc_info=True)
        return 1

    if not settings.discord_webhook_url:
        logger.critical("Error: DISCORD_WEBHOOK_URL must be set!")
        return 1

    engine = ChangeDetectionEngine(
        watch_set,
        DiscordPublisher(settings.discord_webhook_url),
        repos_dir=settings.repos_dir,
        credentials=settings.credentials,
        timeout=settings.fetch_timeout_seconds,
    )
    settings.repos_dir.mkdir(parents=True, exist_ok=True)
    monitor(engine, watch_set, settings)
    return 0


if __name__ == "__main__":
    sys.exit(main())
