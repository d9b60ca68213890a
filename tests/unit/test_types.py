"""Unit tests for branch observation and the watch set registry."""

import threading

import pytest

from watcher.types import (
    BranchConfig,
    ObservationKind,
    RepositoryConfig,
    WatchSet,
)


@pytest.fixture()
def repo() -> RepositoryConfig:
    return RepositoryConfig(
        name="demo",
        url="https://example.com/demo.git",
        branches={
            "main": BranchConfig(name="main", last_seen_commit="aaaa1111"),
            "dev": BranchConfig(name="dev"),
        },
    )


class TestBranchObserve:
    """Tests for BranchConfig.observe."""

    def test_first_observation_sets_watermark(self):
        """A branch never seen before records the commit right away."""
        branch = BranchConfig(name="main")

        observation = branch.observe("bbbb2222")

        assert observation.kind is ObservationKind.FIRST_SEEN
        assert observation.old_commit is None
        assert branch.last_seen_commit == "bbbb2222"

    def test_changed_keeps_watermark(self):
        """A change carries both commits and leaves the watermark alone."""
        branch = BranchConfig(name="main", last_seen_commit="aaaa1111")

        observation = branch.observe("bbbb2222")

        assert observation.kind is ObservationKind.CHANGED
        assert observation.old_commit == "aaaa1111"
        assert observation.new_commit == "bbbb2222"
        assert branch.last_seen_commit == "aaaa1111"

    def test_unchanged(self):
        """The same commit is a no-op."""
        branch = BranchConfig(name="main", last_seen_commit="aaaa1111")

        assert branch.observe("aaaa1111").kind is ObservationKind.UNCHANGED

    def test_advance(self):
        """advance moves the watermark."""
        branch = BranchConfig(name="main", last_seen_commit="aaaa1111")

        branch.advance("bbbb2222")

        assert branch.last_seen_commit == "bbbb2222"


class TestRepositoryObserve:
    """Tests for RepositoryConfig.observe."""

    def test_remote_prefix_stripped(self, repo: RepositoryConfig):
        """`origin/main` maps to the `main` branch."""
        observation = repo.observe("origin/main", "bbbb2222")

        assert observation.kind is ObservationKind.CHANGED
        assert observation.branch_name == "main"

    def test_untracked_branch(self, repo: RepositoryConfig):
        """Branches that are not configured are ignored."""
        observation = repo.observe("origin/feature", "cccc3333")

        assert observation.kind is ObservationKind.UNTRACKED
        assert repo.branch_for_ref("origin/feature") is None

    def test_first_seen_branch(self, repo: RepositoryConfig):
        """A configured branch without a watermark is first seen."""
        observation = repo.observe("origin/dev", "dddd4444")

        assert observation.kind is ObservationKind.FIRST_SEEN
        assert repo.branches["dev"].last_seen_commit == "dddd4444"

    def test_to_entry_omits_empty_fields(self, repo: RepositoryConfig):
        """Empty commits and patterns are not written out."""
        repo.branches["main"].interest_patterns = ["src"]

        assert repo.to_entry() == {
            "url": "https://example.com/demo.git",
            "branches": {
                "main": {"commit": "aaaa1111", "files": ["src"]},
                "dev": {},
            },
        }


class TestWatchSet:
    """Tests for the WatchSet registry."""

    def test_add_and_iterate(self, repo: RepositoryConfig):
        """Added repositories are iterated in order."""
        watch_set = WatchSet([repo])

        assert len(watch_set) == 1
        assert list(watch_set) == [repo]

    def test_duplicate_name_rejected(self, repo: RepositoryConfig):
        """Names are unique."""
        watch_set = WatchSet([repo])

        with pytest.raises(ValueError, match="already watched"):
            watch_set.add(RepositoryConfig(name="demo", url="https://other"))

    def test_lock_per_repository(self, repo: RepositoryConfig):
        """Each repository gets its own lock."""
        watch_set = WatchSet([repo, RepositoryConfig(name="other", url="x")])

        assert isinstance(watch_set.lock_for("demo"), type(threading.Lock()))
        assert watch_set.lock_for("demo") is watch_set.lock_for("demo")
        assert watch_set.lock_for("demo") is not watch_set.lock_for("other")

    def test_to_file(self, repo: RepositoryConfig):
        """The snapshot has the persisted layout."""
        data = WatchSet([repo]).to_file()

        assert list(data) == ["repos"]
        assert data["repos"]["demo"]["branches"]["main"] == {"commit": "aaaa1111"}
