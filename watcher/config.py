"""Settings from the environment and persistence of the watch file."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from watcher.errors import ConfigError
from watcher.mirror import Credentials, is_safe_name
from watcher.types import BranchConfig, RepositoryConfig, WatchFile, WatchSet

logger = logging.getLogger(__name__)


def _number(environ: Mapping[str, str], key: str, default: float) -> float:
    raw = environ.get(key, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        msg = f"{key} must be a number, got `{raw}`"
        raise ConfigError(msg) from exc
    if value <= 0:
        msg = f"{key} must be positive, got `{raw}`"
        raise ConfigError(msg)
    return value


@dataclass(frozen=True)
class Settings:
    """Process settings, read from environment variables."""

    watch_file: Path = Path("watch.json")
    repos_dir: Path = Path("repos")
    discord_webhook_url: Optional[str] = None
    github_user: str = ""
    github_token: str = ""
    poll_interval_seconds: float = 120
    fetch_timeout_seconds: float = 60
    max_workers: int = 4

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> Settings:
        """Build settings from the environment.

        Raises
        ------
        ConfigError
            If a numeric setting is not a positive number.

        """
        if environ is None:
            environ = os.environ
        return cls(
            watch_file=Path(environ.get("WATCH_FILE", "").strip() or "watch.json"),
            repos_dir=Path(environ.get("REPOS_DIR", "").strip() or "repos"),
            discord_webhook_url=environ.get("DISCORD_WEBHOOK_URL", "").strip() or None,
            github_user=environ.get("GITHUB_USER", "").strip(),
            github_token=environ.get("GITHUB_TOKEN", "").strip(),
            poll_interval_seconds=_number(environ, "POLL_INTERVAL_SECONDS", 120),
            fetch_timeout_seconds=_number(environ, "FETCH_TIMEOUT_SECONDS", 60),
            max_workers=int(_number(environ, "MAX_WORKERS", 4)),
        )

    @property
    def credentials(self) -> Credentials:
        return Credentials(self.github_user, self.github_token)


def _branch_from_entry(repo_name: str, name: str, entry: Any) -> BranchConfig:
    if entry is None:
        entry = {}
    if not isinstance(entry, dict):
        msg = f"Branch `{name}` of `{repo_name}` must be a mapping"
        raise ConfigError(msg)
    commit = entry.get("commit", "") or ""
    files = entry.get("files", []) or []
    if not isinstance(commit, str):
        msg = f"Commit of `{repo_name}:{name}` must be a string"
        raise ConfigError(msg)
    if not isinstance(files, list) or not all(isinstance(f, str) for f in files):
        msg = f"Files of `{repo_name}:{name}` must be a list of strings"
        raise ConfigError(msg)
    return BranchConfig(name=name, last_seen_commit=commit, interest_patterns=files)


def _repository_from_entry(name: str, entry: Any) -> RepositoryConfig:
    if not is_safe_name(name):
        msg = f"Repository name `{name}` must be a single directory name"
        raise ConfigError(msg)
    if not isinstance(entry, dict):
        msg = f"Repository `{name}` must be a mapping"
        raise ConfigError(msg)
    url = entry.get("url")
    if not isinstance(url, str) or not url.strip():
        msg = f"Repository `{name}` needs a url"
        raise ConfigError(msg)
    branches = entry.get("branches")
    if branches is None:
        branches = {}
    if not isinstance(branches, dict):
        msg = f"Branches of `{name}` must be a mapping"
        raise ConfigError(msg)
    return RepositoryConfig(
        name=name,
        url=url.strip(),
        branches={
            branch_name: _branch_from_entry(name, branch_name, branch_entry)
            for branch_name, branch_entry in branches.items()
        },
    )


def watch_set_from_file(data: Any) -> WatchSet:
    """Build a watch set from the decoded contents of a watch file."""
    if not isinstance(data, dict):
        msg = "The watch file must contain a JSON object"
        raise ConfigError(msg)
    repos = data.get("repos")
    if repos is None:
        repos = {}
    if not isinstance(repos, dict):
        msg = "`repos` must map repository names to repositories"
        raise ConfigError(msg)
    return WatchSet(
        [_repository_from_entry(name, entry) for name, entry in repos.items()],
    )


def load_watch_set(path: Union[str, Path]) -> WatchSet:
    """Load the watched repositories and their last seen commits.

    Returns
    -------
    WatchSet
        The watched repositories; empty if the file does not exist.

    Raises
    ------
    ConfigError
        If the file cannot be read or is malformed.

    """
    path = Path(path)
    try:
        with path.open(encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.warning("Watch file `%s` not found, nothing to watch", path)
        return WatchSet()
    except json.JSONDecodeError as exc:
        msg = f"Watch file `{path}` is not valid JSON: {exc}"
        raise ConfigError(msg) from exc
    except OSError as exc:
        msg = f"Could not read watch file `{path}`: {exc}"
        raise ConfigError(msg) from exc
    return watch_set_from_file(data)


def save_watch_set(watch_set: WatchSet, path: Union[str, Path]) -> None:
    """Save the watched repositories and their last seen commits.

    The data is written next to the file and moved over it, so an
    interrupted save leaves the previous contents in place.
    """
    data: WatchFile = watch_set.to_file()
    path = Path(path)
    partial = path.with_name(f"{path.name}.tmp")
    try:
        with partial.open("w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
        partial.replace(path)
    except BaseException:
        partial.unlink(missing_ok=True)
        raise
    logger.debug("Saved watch file `%s`", path)
