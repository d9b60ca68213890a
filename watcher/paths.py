"""Matching of changed file paths against interest patterns.

Patterns are shell globs applied segment by segment: `*` and `?` never
cross a `/`, and a `**` segment spans any number of directories. A
pattern that matches the leading directories of a path matches every
path below them, so `docs` and `docs/*` both match `docs/readme.md`.
"""

from __future__ import annotations

import fnmatch
from typing import Iterable, Sequence

RECURSIVE_WILDCARD = "**"


def _split(path: str) -> list[str]:
    """Split a path into its non-empty segments."""
    path = path.strip()
    if path.startswith("./"):
        path = path[2:]
    return [segment for segment in path.split("/") if segment]


def _match_segments(pattern: Sequence[str], path: Sequence[str]) -> bool:
    if not pattern:
        # Everything left in the path lives under the matched directory.
        return True
    head, rest = pattern[0], pattern[1:]
    if head == RECURSIVE_WILDCARD:
        return any(
            _match_segments(rest, path[index:]) for index in range(len(path) + 1)
        )
    if not path:
        return False
    if not fnmatch.fnmatchcase(path[0], head):
        return False
    return _match_segments(rest, path[1:])


def path_matches(pattern: str, path: str) -> bool:
    """Check if a changed path satisfies an interest pattern.

    Parameters
    ----------
    pattern : str
        A glob pattern, a plain file path or a directory prefix.
    path : str
        The repository-relative path of a changed file.

    Returns
    -------
    bool
        True if the pattern matches the full path or one of its parent
        directories, False otherwise.

    """
    if pattern == path:
        return True
    pattern_segments = _split(pattern)
    if not pattern_segments:
        return False
    return _match_segments(pattern_segments, _split(path))


def any_match(patterns: Sequence[str], changed_paths: Iterable[str]) -> bool:
    """Check if any pattern matches any changed path.

    An empty pattern list means no filter is configured and always
    matches, even when nothing changed.
    """
    if not patterns:
        return True
    paths = list(changed_paths)
    return any(path_matches(pattern, path) for pattern in patterns for path in paths)
