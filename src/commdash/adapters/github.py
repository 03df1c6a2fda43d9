"""GitHub notifications adapter."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from commdash.adapters.base import Fields, HTTPSourceAdapter, first_line, join_lines
from commdash.models import Item, make_source_key


@dataclass(frozen=True)
class GitHubSubject:
    title: str
    type: str
    url: str


@dataclass(frozen=True)
class GitHubRepository:
    name: str
    full_name: str
    owner: str


@dataclass(frozen=True)
class GitHubNotification:
    id: str
    reason: str
    unread: bool
    subject: GitHubSubject
    repository: GitHubRepository

    @classmethod
    def from_payload(cls, payload: Any) -> "GitHubNotification":
        f = Fields(payload, source="github", what="notification")
        subject = f.nested("subject")
        repo = f.nested("repository")
        return cls(
            id=f.identifier(),
            reason=f.string("reason"),
            unread=f.boolean("unread"),
            subject=GitHubSubject(
                title=subject.string("title"),
                type=subject.string("type"),
                url=subject.string("url"),
            ),
            repository=GitHubRepository(
                name=repo.string("name"),
                full_name=repo.string("fullName", "full_name"),
                owner=repo.string("owner"),
            ),
        )


class GitHubAdapter(HTTPSourceAdapter[GitHubNotification]):
    name = "github"
    default_url = "https://api.github.com/notifications"
    envelope_key = "notifications"

    def parse(self, payload: Any) -> GitHubNotification:
        return GitHubNotification.from_payload(payload)

    def normalize(self, raw: GitHubNotification) -> Item:
        repo = raw.repository.full_name or raw.repository.name
        title = first_line(raw.subject.title) or f"{raw.subject.type or 'Notification'} in {repo}"
        content = join_lines(
            f"Reason: {raw.reason}" if raw.reason else None,
            f"Type: {raw.subject.type}" if raw.subject.type else None,
            f"Repository: {repo}" if repo else None,
            "Unread" if raw.unread else None,
        )
        return Item(make_source_key(self.name, raw.id), title, content)
