"""Local bare mirrors of watched repositories."""

from __future__ import annotations

import base64
import configparser
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Union
from urllib.parse import urlparse

import git
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from watcher.diff import run_name_status_diff
from watcher.errors import FetchError, MirrorCorrupted, MirrorInitError
from watcher.types import REMOTE_NAME

if TYPE_CHECKING:
    from watcher.types import RepositoryConfig

logger = logging.getLogger(__name__)

FORGE_HOST = "github.com"


@dataclass(frozen=True)
class Credentials:
    """Forge credentials used for token-based basic authentication."""

    user: str = ""
    token: str = ""

    def __bool__(self) -> bool:
        return bool(self.user and self.token)


@dataclass(frozen=True)
class RemoteRef:
    """A remote-tracking branch and the commit it points at."""

    name: str
    commit: str


def is_safe_name(name: str) -> bool:
    """Check a repository name can be used as a single directory name."""
    return bool(name) and name not in (".", "..") and not any(
        separator in name for separator in ("/", "\\")
    )


def mirror_path(repos_dir: Union[str, Path], name: str) -> Path:
    """Return the mirror directory of a repository.

    Raises
    ------
    MirrorInitError
        If the directory would not be a direct child of `repos_dir`.

    """
    repos_dir = Path(repos_dir)
    path = repos_dir / name
    if not is_safe_name(name) or path.resolve().parent != repos_dir.resolve():
        msg = f"`{name}` does not name a directory inside `{repos_dir}`"
        raise MirrorInitError(name, msg)
    return path


def _remove(path: Path) -> None:
    if path.is_dir():
        shutil.rmtree(path)
    elif path.exists():
        path.unlink()


class RepositoryMirror:
    """A bare mirror of one remote repository.

    The mirror has exactly one remote, `origin`, pointing at the
    configured URL. Use `open_or_init` to get one.
    """

    def __init__(
        self,
        name: str,
        url: str,
        path: Path,
        repo: git.Repo,
        credentials: Optional[Credentials] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.name = name
        self.url = url
        self.path = path
        self.repo = repo
        self.credentials = credentials or Credentials()
        self.timeout = timeout

    @classmethod
    def open_or_init(
        cls,
        config: RepositoryConfig,
        repos_dir: Union[str, Path],
        credentials: Optional[Credentials] = None,
        timeout: Optional[float] = None,
    ) -> RepositoryMirror:
        """Open the mirror of a repository, building it if needed.

        A mirror whose remotes do not match the configuration is deleted
        and rebuilt, so editing a URL never keeps watching the old
        repository.

        Parameters
        ----------
        config : RepositoryConfig
            The repository to mirror. Its branch watermarks are set from
            the remote when a new mirror is built.
        repos_dir : str | Path
            Parent directory of all mirrors.
        credentials : Credentials, optional
            Credentials for the forge host.
        timeout : float, optional
            Seconds after which a fetch or diff is killed.

        Raises
        ------
        MirrorInitError
            If the mirror cannot be created or its initial fetch fails, or
            if the repository name does not map to a directory directly
            inside `repos_dir`.

        """
        path = mirror_path(repos_dir, config.name)
        try:
            repo = git.Repo(path)
        except (NoSuchPathError, InvalidGitRepositoryError):
            if path.exists():
                logger.warning(
                    "`%s` is not a git repository, rebuilding mirror of %s",
                    path,
                    config.name,
                )
                cls._discard(config.name, path)
        else:
            mirror = cls(config.name, config.url, path, repo, credentials, timeout)
            try:
                mirror.validate()
            except MirrorCorrupted as exc:
                logger.warning("Mirror of %s is stale (%s), rebuilding", config.name, exc)
                repo.close()
                cls._discard(config.name, path)
            else:
                logger.debug("Opened mirror of %s at `%s`", config.name, path)
                return mirror

        return cls._init(config, path, credentials, timeout)

    @classmethod
    def _init(
        cls,
        config: RepositoryConfig,
        path: Path,
        credentials: Optional[Credentials],
        timeout: Optional[float],
    ) -> RepositoryMirror:
        logger.info("Creating mirror of %s (%s) at `%s`", config.name, config.url, path)
        try:
            repo = git.Repo.init(path, bare=True, mkdir=True)
            repo.create_remote(REMOTE_NAME, config.url)
        except (GitCommandError, OSError) as exc:
            msg = f"could not create mirror at `{path}`: {exc}"
            raise MirrorInitError(config.name, msg) from exc

        mirror = cls(config.name, config.url, path, repo, credentials, timeout)
        try:
            mirror.fetch()
            refs = mirror.remote_refs()
        except FetchError as exc:
            repo.close()
            # An empty mirror would be opened as valid on the next poll.
            cls._discard(config.name, path)
            msg = f"initial fetch failed: {exc}"
            raise MirrorInitError(config.name, msg) from exc

        # Set watermarks from the remote so the first poll has something to
        # compare against without reporting the whole history as a change.
        heads = {ref.name: ref.commit for ref in refs}
        for branch_name, branch in config.branches.items():
            branch.advance(heads.get(f"{REMOTE_NAME}/{branch_name}", ""))
            logger.debug(
                "Watermark of %s:%s set to `%s`",
                config.name,
                branch_name,
                branch.last_seen_commit,
            )
        return mirror

    @staticmethod
    def _discard(name: str, path: Path) -> None:
        try:
            _remove(path)
        except OSError as exc:
            msg = f"could not delete stale mirror at `{path}`: {exc}"
            raise MirrorInitError(name, msg) from exc

    def validate(self) -> None:
        """Check the mirror has a single remote pointing at the configured URL.

        Raises
        ------
        MirrorCorrupted
            If there is not exactly one remote or its URL differs.

        """
        try:
            remotes = self.repo.remotes
            if len(remotes) != 1:
                msg = f"expected one remote, found {len(remotes)}"
                raise MirrorCorrupted(msg)
            url = remotes[0].url
        except (configparser.Error, GitCommandError) as exc:
            msg = f"unreadable remote configuration: {exc}"
            raise MirrorCorrupted(msg) from exc
        if url != self.url:
            msg = f"remote URL `{url}` differs from `{self.url}`"
            raise MirrorCorrupted(msg)

    def _auth_environment(self) -> dict[str, str]:
        """Git environment passing forge credentials as an HTTP header."""
        if not self.credentials or urlparse(self.url).hostname != FORGE_HOST:
            return {}
        basic = base64.b64encode(
            f"{self.credentials.user}:{self.credentials.token}".encode(),
        ).decode("ascii")
        return {
            "GIT_CONFIG_COUNT": "1",
            "GIT_CONFIG_KEY_0": "http.extraHeader",
            "GIT_CONFIG_VALUE_0": f"Authorization: Basic {basic}",
        }

    def fetch(self) -> None:
        """Fetch all branches from the remote.

        Being already up to date is not an error.

        Raises
        ------
        FetchError
            If the remote is missing or git fails or times out.

        """
        environment = {"GIT_TERMINAL_PROMPT": "0"}
        auth = self._auth_environment()
        environment.update(auth)
        logger.debug(
            "Fetching %s (%s)",
            self.name,
            "authenticated" if auth else "anonymous",
        )
        try:
            remote = self.repo.remote(REMOTE_NAME)
            with self.repo.git.custom_environment(**environment):
                remote.fetch(kill_after_timeout=self.timeout)
        except (GitCommandError, ValueError) as exc:
            raise FetchError(self.name, f"fetch failed: {exc}") from exc
        logger.info("Fetched %s (%s)", self.name, self.url)

    def remote_refs(self) -> list[RemoteRef]:
        """List the remote-tracking branches of the mirror."""
        refs = []
        try:
            for ref in self.repo.references:
                if not isinstance(ref, git.RemoteReference):
                    continue
                if ref.remote_name != REMOTE_NAME or ref.remote_head == "HEAD":
                    continue
                refs.append(
                    RemoteRef(f"{REMOTE_NAME}/{ref.remote_head}", ref.commit.hexsha),
                )
        except (GitCommandError, ValueError) as exc:
            raise FetchError(self.name, f"could not list refs: {exc}") from exc
        return refs

    def diff(self, old_commit: str, new_commit: str) -> str:
        """Return the name-status diff between two commits."""
        return run_name_status_diff(
            self.path,
            old_commit,
            new_commit,
            repo_name=self.name,
            timeout=self.timeout,
        )

    def close(self) -> None:
        self.repo.close()
