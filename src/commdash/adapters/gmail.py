"""Gmail message list adapter."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from commdash.adapters.base import Fields, HTTPSourceAdapter, first_line, join_lines
from commdash.models import Item, make_source_key


@dataclass(frozen=True)
class GmailMessage:
    id: str
    sender: str
    subject: str
    snippet: str
    timestamp: str

    @classmethod
    def from_payload(cls, payload: Any) -> "GmailMessage":
        f = Fields(payload, source="gmail", what="message")
        return cls(
            id=f.identifier(),
            sender=f.string("from"),
            subject=f.string("subject"),
            snippet=f.string("snippet"),
            timestamp=f.string("timestamp"),
        )


class GmailAdapter(HTTPSourceAdapter[GmailMessage]):
    name = "gmail"
    default_url = "https://www.googleapis.com/gmail/v1/messages"
    envelope_key = "messages"

    def parse(self, payload: Any) -> GmailMessage:
        return GmailMessage.from_payload(payload)

    def normalize(self, raw: GmailMessage) -> Item:
        title = first_line(raw.subject) or "(no subject)"
        content = join_lines(raw.snippet, f"From: {raw.sender}" if raw.sender else None)
        return Item(make_source_key(self.name, raw.id), title, content)
