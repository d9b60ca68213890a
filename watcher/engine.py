"""Poll cycles: fetch, detect branch advances, diff, filter and publish."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Optional, Union

from watcher.diff import parse_name_status
from watcher.errors import PollError, PublishError
from watcher.mirror import Credentials, RepositoryMirror
from watcher.notify import ChangeReport, Publisher, build_notification
from watcher.paths import any_match
from watcher.types import ObservationKind, RepositoryConfig, WatchSet

logger = logging.getLogger(__name__)

MirrorOpener = Callable[[RepositoryConfig], RepositoryMirror]


class ChangeDetectionEngine:
    """Polls watched repositories and publishes interesting changes.

    Parameters
    ----------
    watch_set : WatchSet
        The repositories to poll. Branch watermarks are updated in place.
    publisher : Publisher
        Receives one notification per interesting branch advance.
    repos_dir : str | Path
        Parent directory of the mirrors.
    credentials : Credentials, optional
        Forge credentials used when fetching.
    timeout : float, optional
        Seconds after which a fetch or diff of one repository is killed.
    mirror_opener : callable, optional
        Replaces `RepositoryMirror.open_or_init`.

    """

    def __init__(
        self,
        watch_set: WatchSet,
        publisher: Publisher,
        repos_dir: Union[str, Path] = "repos",
        credentials: Optional[Credentials] = None,
        timeout: Optional[float] = None,
        mirror_opener: Optional[MirrorOpener] = None,
    ) -> None:
        self.watch_set = watch_set
        self.publisher = publisher
        self.repos_dir = Path(repos_dir)
        self.credentials = credentials
        self.timeout = timeout
        self.mirror_opener = mirror_opener or self._open_mirror

    def _open_mirror(self, repo: RepositoryConfig) -> RepositoryMirror:
        return RepositoryMirror.open_or_init(
            repo,
            self.repos_dir,
            credentials=self.credentials,
            timeout=self.timeout,
        )

    def poll_once(self, repo: RepositoryConfig) -> int:
        """Run one poll cycle for a repository.

        Holds the repository's lock for the whole cycle.

        Returns
        -------
        int
            The number of notifications published.

        Raises
        ------
        PollError
            If the mirror cannot be opened, the fetch fails or a diff
            fails. Branches processed before the failure keep their
            advanced watermark; the failing one is retried next poll.

        """
        with self.watch_set.lock_for(repo.name):
            if repo.mirror is None:
                repo.mirror = self.mirror_opener(repo)
            mirror = repo.mirror

            mirror.fetch()

            published = 0
            for ref in mirror.remote_refs():
                observation = repo.observe(ref.name, ref.commit)
                if observation.kind is ObservationKind.UNTRACKED:
                    continue
                if observation.kind is ObservationKind.FIRST_SEEN:
                    logger.debug(
                        "First observation of %s:%s at `%s`",
                        repo.name,
                        observation.branch_name,
                        observation.new_commit,
                    )
                    continue
                if observation.kind is ObservationKind.UNCHANGED:
                    continue

                branch = repo.branches[observation.branch_name]
                logger.debug(
                    "%s:%s moved `%s` -> `%s`",
                    repo.name,
                    branch.name,
                    observation.old_commit,
                    observation.new_commit,
                )
                report = ChangeReport(
                    repo_name=repo.name,
                    url=repo.url,
                    branch=branch.name,
                    old_commit=observation.old_commit,
                    new_commit=observation.new_commit,
                    changes=parse_name_status(
                        mirror.diff(observation.old_commit, observation.new_commit),
                    ),
                )
                for change in report.changes:
                    logger.debug("%s - %s", change.change_type.value, change.path)

                if any_match(branch.interest_patterns, report.paths):
                    if self._publish(report):
                        published += 1
                else:
                    logger.info(
                        "No interesting changes on %s:%s, not reporting",
                        repo.name,
                        branch.name,
                    )
                branch.advance(observation.new_commit)
            return published

    def _publish(self, report: ChangeReport) -> bool:
        """Hand a report to the publisher; failures are logged, not raised."""
        payload = build_notification(report)
        try:
            self.publisher.publish(payload.title, payload.body, payload.link)
        except PublishError:
            logger.exception("Could not publish `%s`", payload.title)
            return False
        except Exception:  # noqa: BLE001
            logger.exception("Unexpected error publishing `%s`", payload.title)
            return False
        logger.info("Published `%s`", payload.title)
        return True

    def poll_all(self, max_workers: int = 4) -> dict[str, Optional[PollError]]:
        """Poll every watched repository, in parallel.

        A failing repository is logged and does not stop the others.

        Returns
        -------
        dict[str, Optional[PollError]]
            The error of each repository, None for successful polls.

        """
        repositories = list(self.watch_set)
        results: dict[str, Optional[PollError]] = {}
        if not repositories:
            return results

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {
                repo.name: executor.submit(self.poll_once, repo)
                for repo in repositories
            }
            for name, future in futures.items():
                try:
                    future.result()
                except PollError as exc:
                    logger.error("Polling %s failed: %s", name, exc)
                    results[name] = exc
                except Exception as exc:  # noqa: BLE001
                    logger.exception("Unexpected error while polling %s", name)
                    results[name] = PollError(name, f"unexpected error: {exc}")
                else:
                    results[name] = None
        return results
