"""Slack channel history adapter."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from commdash.adapters.base import Fields, HTTPSourceAdapter, first_line, join_lines
from commdash.models import Item, make_source_key


@dataclass(frozen=True)
class SlackMessage:
    id: str
    text: str
    user: str
    timestamp: float
    channel: str

    @classmethod
    def from_payload(cls, payload: Any) -> "SlackMessage":
        f = Fields(payload, source="slack", what="message")
        return cls(
            id=f.identifier(),
            text=f.string("text"),
            user=f.string("user"),
            timestamp=f.number("timestamp", "ts"),
            channel=f.string("channel"),
        )


class SlackAdapter(HTTPSourceAdapter[SlackMessage]):
    """Reads ``conversations.history`` and yields one item per message."""

    name = "slack"
    default_url = "https://slack.com/api/conversations.history"
    envelope_key = "messages"

    def parse(self, payload: Any) -> SlackMessage:
        return SlackMessage.from_payload(payload)

    def normalize(self, raw: SlackMessage) -> Item:
        title = first_line(raw.text) or f"Message from {raw.user or 'unknown'}"
        content = join_lines(raw.text, f"#{raw.channel}" if raw.channel else None, raw.user)
        return Item(make_source_key(self.name, raw.id), title, content)
