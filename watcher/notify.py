"""Notification rendering and publishing."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

import requests

from watcher.errors import PublishError
from watcher.types import ChangeRecord, NotificationPayload

logger = logging.getLogger(__name__)

SHORT_COMMIT_LENGTH = 8
STATUS_NO_CONTENT = 204
MAX_DESCRIPTION_LENGTH = 4096
TRUNCATION_MARK = "\n..."


@dataclass
class ChangeReport:
    """What changed on a branch between two commits."""

    repo_name: str
    url: str
    branch: str
    old_commit: str
    new_commit: str
    changes: list[ChangeRecord] = field(default_factory=list)

    @property
    def paths(self) -> list[str]:
        return [change.path for change in self.changes]


def build_title(report: ChangeReport) -> str:
    """Build a title such as `demo (aaaa1111 .. bbbb2222)`."""
    old = report.old_commit[:SHORT_COMMIT_LENGTH]
    new = report.new_commit[:SHORT_COMMIT_LENGTH]
    return f"{report.repo_name} ({old} .. {new})"


def build_body(report: ChangeReport) -> str:
    """Render a report as Markdown, one line per changed file.

    The old and new commits bracket the list of changes.
    """
    lines = [
        f"Changes in {report.repo_name} on {report.branch} "
        f"([{report.url}]({report.url}))",
        "",
        f"**{report.old_commit}**",
    ]
    lines.extend(f"{change.change_type.value} - {change.path}" for change in report.changes)
    lines.append(f"**{report.new_commit}**")
    return "\n".join(lines)


def build_notification(report: ChangeReport) -> NotificationPayload:
    return NotificationPayload(
        title=build_title(report),
        body=build_body(report),
        link=report.url,
    )


class Publisher(Protocol):
    """Anything that can deliver a notification."""

    def publish(self, title: str, body: str, link: str) -> None: ...


class DiscordPublisher:
    """Posts notifications to a Discord webhook as a single embed."""

    def __init__(self, webhook_url: str, timeout: float = 10) -> None:
        self.webhook_url = webhook_url
        self.timeout = timeout

    @staticmethod
    def _truncate(description: str) -> str:
        if len(description) <= MAX_DESCRIPTION_LENGTH:
            return description
        cut = MAX_DESCRIPTION_LENGTH - len(TRUNCATION_MARK)
        return description[:cut] + TRUNCATION_MARK

    def publish(self, title: str, body: str, link: str) -> None:
        """Send a notification to the webhook.

        Parameters
        ----------
        title : str
            The embed title.
        body : str
            The embed description, Markdown allowed.
        link : str
            URL the title links to.

        Raises
        ------
        PublishError
            If the request fails or Discord does not accept the message.

        """
        embed = {
            "title": title,
            "url": link,
            "description": self._truncate(body),
            "footer": {"text": "Powered by repo-watcher"},
        }
        try:
            response = requests.post(
                self.webhook_url,
                json={"embeds": [embed]},
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as exc:
            msg = f"Error posting `{title}` to Discord: {exc}"
            raise PublishError(msg) from exc
        if response.status_code != STATUS_NO_CONTENT:
            msg = f"Discord rejected `{title}` ({response.status_code}): `{response.text}`"
            raise PublishError(msg)
        logger.info("Posted `%s` to Discord", title)
