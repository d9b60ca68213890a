"""
Shared fixtures for the watcher test suite.

Provides:
- Local git repositories to mirror from
- An in-memory mirror and a recording publisher for engine tests
"""

import shutil
from pathlib import Path

import pytest

from watcher.errors import PublishError
from watcher.mirror import RemoteRef

requires_git = pytest.mark.skipif(
    shutil.which("git") is None,
    reason="git executable not available",
)


class FakeMirror:
    """Mirror double serving refs and diffs from memory."""

    def __init__(self, refs=None, diffs=None):
        self.refs = dict(refs or {})
        self.diffs = dict(diffs or {})
        self.fetch_error = None
        self.fetches = 0
        self.diff_calls = []

    def fetch(self):
        self.fetches += 1
        if self.fetch_error is not None:
            raise self.fetch_error

    def remote_refs(self):
        return [RemoteRef(name, commit) for name, commit in self.refs.items()]

    def diff(self, old_commit, new_commit):
        self.diff_calls.append((old_commit, new_commit))
        result = self.diffs[(old_commit, new_commit)]
        if isinstance(result, Exception):
            raise result
        return result


class RecordingPublisher:
    """Publisher double keeping every notification it receives."""

    def __init__(self, fail=False):
        self.fail = fail
        self.published = []

    def publish(self, title, body, link):
        if self.fail:
            raise PublishError("webhook unreachable")
        self.published.append((title, body, link))


@pytest.fixture()
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


class SourceRepo:
    """A non-bare repository acting as the remote of a mirror."""

    def __init__(self, path: Path):
        import git

        self.path = path
        self.repo = git.Repo.init(path)
        self.actor = git.Actor("Watcher Tests", "tests@example.com")

    @property
    def url(self) -> str:
        return str(self.path)

    @property
    def branch(self) -> str:
        return self.repo.active_branch.name

    def commit(self, files: dict, message: str = "change") -> str:
        """Write files (None deletes) and commit them, returning the sha."""
        for relative, content in files.items():
            target = self.path / relative
            if content is None:
                self.repo.index.remove([relative], working_tree=True)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
            self.repo.index.add([relative])
        commit = self.repo.index.commit(
            message,
            author=self.actor,
            committer=self.actor,
        )
        return commit.hexsha


@pytest.fixture()
def source_repo(tmp_path: Path) -> SourceRepo:
    """Create a source repository with one initial commit."""
    source = SourceRepo(tmp_path / "source")
    source.commit({"README.md": "# demo\n"}, "initial commit")
    return source
