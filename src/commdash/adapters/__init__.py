"""Source adapters: one per provider, all behind :class:`SourceAdapter`."""

from __future__ import annotations

import logging
from typing import List

from commdash.adapters.base import (
    CommandSourceAdapter,
    Fields,
    HTTPSourceAdapter,
    SourceAdapter,
    decode_envelope,
)
from commdash.adapters.calendar import CalendarAdapter, CalendarEvent
from commdash.adapters.github import GitHubAdapter, GitHubNotification
from commdash.adapters.gmail import GmailAdapter, GmailMessage
from commdash.adapters.linear import LinearAdapter, LinearIssue
from commdash.adapters.slack import SlackAdapter, SlackMessage
from commdash.config import CommdashConfig
from commdash.transport.http import HTTPClient
from commdash.transport.shell import ShellExecutor

logger = logging.getLogger(__name__)

HTTP_ADAPTERS = {
    "slack": SlackAdapter,
    "gmail": GmailAdapter,
    "linear": LinearAdapter,
    "github": GitHubAdapter,
}


def build_adapters(
    config: CommdashConfig,
    http: HTTPClient,
    shell: ShellExecutor,
) -> List[SourceAdapter]:
    """Instantiate every enabled source with its configured overrides."""
    adapters: List[SourceAdapter] = []
    for name in config.enabled_sources():
        cfg = config.source(name)
        if name == "calendar":
            adapters.append(CalendarAdapter(
                shell,
                command=cfg.command,
                working_directory=cfg.working_directory,
                environment=cfg.environment or None,
            ))
        elif name == "linear":
            adapters.append(LinearAdapter(
                http, url=cfg.url, token=cfg.token, headers=cfg.headers, query=cfg.query,
            ))
        else:
            adapters.append(HTTP_ADAPTERS[name](
                http, url=cfg.url, token=cfg.token, headers=cfg.headers,
            ))
    logger.debug("Built adapters: %s", ", ".join(a.name for a in adapters) or "(none)")
    return adapters


__all__ = [
    "CalendarAdapter",
    "CalendarEvent",
    "CommandSourceAdapter",
    "Fields",
    "GitHubAdapter",
    "GitHubNotification",
    "GmailAdapter",
    "GmailMessage",
    "HTTPSourceAdapter",
    "LinearAdapter",
    "LinearIssue",
    "SlackAdapter",
    "SlackMessage",
    "SourceAdapter",
    "build_adapters",
    "decode_envelope",
]
