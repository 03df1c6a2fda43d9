"""Fixture files for tests and offline refreshes.

A fixture directory holds one captured payload per source::

    slack_messages.json        gmail_messages.json     linear_issues.json
    github_notifications.json  calendar_events.json

:func:`install_fixtures` registers them on the transport doubles so a
refresh cycle can run without touching the network.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import yaml

from commdash.adapters.base import CommandSourceAdapter, HTTPSourceAdapter, SourceAdapter
from commdash.adapters.calendar import CalendarAdapter
from commdash.adapters.github import GitHubAdapter
from commdash.adapters.gmail import GmailAdapter
from commdash.adapters.linear import LinearAdapter
from commdash.adapters.slack import SlackAdapter
from commdash.errors import (
    EmptyFixtureError,
    FixtureDecodeError,
    FixtureError,
    FixtureNotFoundError,
)
from commdash.transport.mock import MockHTTPClient, MockShellExecutor

logger = logging.getLogger(__name__)

FIXTURE_FILES: Dict[str, str] = {
    "slack": "slack_messages.json",
    "gmail": "gmail_messages.json",
    "linear": "linear_issues.json",
    "github": "github_notifications.json",
    "calendar": "calendar_events.json",
}


class FixtureLoader:
    """Reads fixture files from one directory."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def path(self, filename: str) -> Path:
        return self.directory / filename

    def exists(self, filename: str) -> bool:
        return self.path(filename).is_file()

    def load_raw(self, filename: str) -> str:
        path = self.path(filename)
        if not path.is_file():
            raise FixtureNotFoundError(filename)
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise FixtureError(f"Failed to read fixture file {filename}: {exc}", filename=filename) from exc

    def _load_nonempty(self, filename: str) -> str:
        text = self.load_raw(filename)
        if not text.strip():
            raise EmptyFixtureError(filename)
        return text

    def load_json(self, filename: str) -> Any:
        text = self._load_nonempty(filename)
        try:
            return json.loads(text)
        except ValueError as exc:
            raise FixtureDecodeError(filename, str(exc)) from exc

    def load_yaml(self, filename: str) -> Any:
        text = self._load_nonempty(filename)
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise FixtureDecodeError(filename, str(exc)) from exc


def _default_adapters(http: MockHTTPClient, shell: MockShellExecutor) -> List[SourceAdapter]:
    return [
        SlackAdapter(http),
        GmailAdapter(http),
        LinearAdapter(http),
        GitHubAdapter(http),
        CalendarAdapter(shell),
    ]


def install_fixtures(
    loader: FixtureLoader,
    http: MockHTTPClient,
    shell: MockShellExecutor,
    adapters: Optional[Iterable[SourceAdapter]] = None,
) -> List[str]:
    """Register each source's fixture on the matching transport double.

    Payloads are registered at the endpoint or command of *adapters*
    (default: every source with its default endpoint).  Sources without a
    fixture file are left unregistered.  Returns the installed source names.
    """
    installed: List[str] = []
    for adapter in adapters if adapters is not None else _default_adapters(http, shell):
        filename = FIXTURE_FILES.get(adapter.name)
        if filename is None or not loader.exists(filename):
            logger.debug("No fixture for %s", adapter.name)
            continue
        payload = loader.load_raw(filename)
        if isinstance(adapter, HTTPSourceAdapter):
            http.register_response(adapter.url, payload)
        elif isinstance(adapter, CommandSourceAdapter):
            shell.register_output(
                adapter.command,
                payload,
                working_directory=adapter.working_directory,
                environment=adapter.environment,
            )
        else:
            continue
        installed.append(adapter.name)
    logger.info("Installed fixtures for: %s", ", ".join(installed) or "(none)")
    return installed
