"""Type definitions for the repository watcher."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Iterator, Optional, TypedDict

if TYPE_CHECKING:
    from watcher.mirror import RepositoryMirror

REMOTE_NAME = "origin"


class BranchEntry(TypedDict, total=False):
    """Represents a branch as stored in the watch file."""

    commit: str
    files: list[str]


class RepositoryEntry(TypedDict, total=False):
    """Represents a repository as stored in the watch file."""

    url: str
    branches: dict[str, BranchEntry]


class WatchFile(TypedDict):
    """Represents the whole watch file."""

    repos: dict[str, RepositoryEntry]


class ChangeType(str, Enum):
    """Kind of change a file went through between two commits."""

    ADDED = "Added"
    MODIFIED = "Modified"
    DELETED = "Deleted"
    RENAMED = "Renamed"
    COPIED = "Copied"


@dataclass(frozen=True)
class ChangeRecord:
    """One file touched between two commits.

    For renames and copies `path` is the destination path.
    """

    change_type: ChangeType
    path: str


@dataclass(frozen=True)
class NotificationPayload:
    """A rendered notification, ready to be handed to a publisher."""

    title: str
    body: str
    link: str


class ObservationKind(str, Enum):
    """Outcome of comparing a remote ref against its branch watermark."""

    UNTRACKED = "untracked"
    FIRST_SEEN = "first-seen"
    UNCHANGED = "unchanged"
    CHANGED = "changed"


@dataclass(frozen=True)
class Observation:
    """Classification of one remote ref.

    `old_commit` is only set for CHANGED observations.
    """

    kind: ObservationKind
    branch_name: Optional[str] = None
    old_commit: Optional[str] = None
    new_commit: Optional[str] = None


@dataclass
class BranchConfig:
    """Tracking state for one branch of a repository.

    Attributes:
    - name (str): The short branch name.
    - last_seen_commit (str): Last commit processed, empty if never seen.
    - interest_patterns (list[str]): Path patterns to report on. Empty
      means every change is reported.

    """

    name: str
    last_seen_commit: str = ""
    interest_patterns: list[str] = field(default_factory=list)

    def observe(self, commit: str) -> Observation:
        """Classify a commit seen on the remote for this branch.

        A first observation sets the watermark right away since there is
        nothing to compare against. A change leaves the watermark alone;
        the caller advances it with `advance` once the change has been
        dealt with.
        """
        if not self.last_seen_commit:
            self.last_seen_commit = commit
            return Observation(
                ObservationKind.FIRST_SEEN,
                branch_name=self.name,
                new_commit=commit,
            )
        if self.last_seen_commit == commit:
            return Observation(
                ObservationKind.UNCHANGED,
                branch_name=self.name,
                new_commit=commit,
            )
        return Observation(
            ObservationKind.CHANGED,
            branch_name=self.name,
            old_commit=self.last_seen_commit,
            new_commit=commit,
        )

    def advance(self, commit: str) -> None:
        """Move the watermark to a commit whose changes were handled."""
        self.last_seen_commit = commit

    def to_entry(self) -> BranchEntry:
        entry: BranchEntry = {}
        if self.last_seen_commit:
            entry["commit"] = self.last_seen_commit
        if self.interest_patterns:
            entry["files"] = list(self.interest_patterns)
        return entry


@dataclass
class RepositoryConfig:
    """A watched repository.

    Attributes:
    - name (str): Unique name, also the mirror's directory name.
    - url (str): The remote URL the mirror must point at.
    - branches (dict[str, BranchConfig]): Tracked branches by short name.
    - mirror (RepositoryMirror): The opened local mirror, never persisted.

    """

    name: str
    url: str
    branches: dict[str, BranchConfig] = field(default_factory=dict)
    mirror: Optional[RepositoryMirror] = field(
        default=None,
        repr=False,
        compare=False,
    )

    def branch_for_ref(self, ref_name: str) -> Optional[BranchConfig]:
        """Return the tracked branch for a remote ref name, if any.

        Parameters
        ----------
        ref_name : str
            The short ref name, with or without the remote prefix
            (e.g. "origin/main" or "main").

        """
        prefix = f"{REMOTE_NAME}/"
        if ref_name.startswith(prefix):
            ref_name = ref_name[len(prefix) :]
        return self.branches.get(ref_name)

    def observe(self, ref_name: str, commit: str) -> Observation:
        """Classify a remote ref against the matching branch, if tracked."""
        branch = self.branch_for_ref(ref_name)
        if branch is None:
            return Observation(ObservationKind.UNTRACKED, new_commit=commit)
        return branch.observe(commit)

    def to_entry(self) -> RepositoryEntry:
        return {
            "url": self.url,
            "branches": {
                name: branch.to_entry() for name, branch in self.branches.items()
            },
        }


class WatchSet:
    """Registry of watched repositories, keyed by name.

    Each repository gets its own lock so polls for the same repository
    never overlap while different repositories are polled in parallel.
    """

    def __init__(self, repositories: Optional[list[RepositoryConfig]] = None) -> None:
        self._guard = threading.Lock()
        self._repositories: dict[str, RepositoryConfig] = {}
        self._locks: dict[str, threading.Lock] = {}
        for repository in repositories or []:
            self.add(repository)

    def add(self, repository: RepositoryConfig) -> None:
        with self._guard:
            if repository.name in self._repositories:
                msg = f"Repository `{repository.name}` is already watched"
                raise ValueError(msg)
            self._repositories[repository.name] = repository
            self._locks[repository.name] = threading.Lock()

    def lock_for(self, name: str) -> threading.Lock:
        """Return the lock serializing polls of a repository."""
        with self._guard:
            return self._locks[name]

    def __iter__(self) -> Iterator[RepositoryConfig]:
        with self._guard:
            repositories = list(self._repositories.values())
        return iter(repositories)

    def __len__(self) -> int:
        with self._guard:
            return len(self._repositories)

    def to_file(self) -> WatchFile:
        """Snapshot the registry in its persisted shape."""
        return {"repos": {repo.name: repo.to_entry() for repo in self}}
