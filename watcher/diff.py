"""Name-status diffs between two commits."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Optional

from watcher.errors import DiffSubprocessError
from watcher.types import ChangeRecord, ChangeType

logger = logging.getLogger(__name__)

STATUS_CODES = {
    "A": ChangeType.ADDED,
    "M": ChangeType.MODIFIED,
    "D": ChangeType.DELETED,
    "R": ChangeType.RENAMED,
    "C": ChangeType.COPIED,
}


def parse_name_status(output: str) -> list[ChangeRecord]:
    """Parse `git diff --name-status` output into change records.

    Parameters
    ----------
    output : str
        One record per line: a status code followed by one path, or two
        paths (source, destination) for renames and copies. The numeric
        similarity score after R and C is ignored.

    Returns
    -------
    list[ChangeRecord]
        The records in input order. Lines with an unknown status code
        are skipped.

    """
    records = []
    for raw_line in output.splitlines():
        line = raw_line.rstrip()
        if not line.strip():
            continue
        fields = line.split("\t") if "\t" in line else line.split()
        status, paths = fields[0].strip(), [f for f in fields[1:] if f]
        change_type = STATUS_CODES.get(status[:1])
        if change_type is None:
            logger.debug("Skipping diff line with unknown status: `%s`", line)
            continue
        if not paths:
            logger.debug("Skipping diff line without a path: `%s`", line)
            continue
        # Renames and copies list the source first, keep the destination.
        records.append(ChangeRecord(change_type, paths[-1]))
    return records


def run_name_status_diff(
    git_dir: Path,
    old_commit: str,
    new_commit: str,
    *,
    repo_name: str = "",
    timeout: Optional[float] = None,
) -> str:
    """Run `git diff --name-status` between two commits inside a mirror.

    The command runs with the mirror as its working directory; the
    process-wide current directory is left untouched.

    Raises
    ------
    DiffSubprocessError
        If git is missing, exits with an error or exceeds the timeout.

    """
    command = [
        "git",
        "-c",
        "core.quotepath=off",
        "diff",
        "--name-status",
        old_commit,
        new_commit,
    ]
    try:
        result = subprocess.run(
            command,
            cwd=git_dir,
            capture_output=True,
            text=True,
            check=True,
            timeout=timeout,
        )
    except subprocess.CalledProcessError as exc:
        msg = f"git diff {old_commit[:8]}..{new_commit[:8]} failed: {exc.stderr.strip()}"
        raise DiffSubprocessError(repo_name, msg) from exc
    except subprocess.TimeoutExpired as exc:
        msg = f"git diff {old_commit[:8]}..{new_commit[:8]} timed out after {timeout}s"
        raise DiffSubprocessError(repo_name, msg) from exc
    except OSError as exc:
        msg = f"could not run git diff: {exc}"
        raise DiffSubprocessError(repo_name, msg) from exc
    return result.stdout
