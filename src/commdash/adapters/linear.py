"""Linear issues adapter (GraphQL over POST)."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, List, Optional

from commdash.adapters.base import Fields, HTTPSourceAdapter, first_line, join_lines
from commdash.models import Item, make_source_key
from commdash.transport.http import Headers, HTTPClient

DEFAULT_QUERY = (
    "{ issues { id title description state "
    "assignee { id name email } labels } }"
)


@dataclass(frozen=True)
class LinearUser:
    id: str
    name: str
    email: str


@dataclass(frozen=True)
class LinearIssue:
    id: str
    title: str
    description: str
    state: str
    assignee: Optional[LinearUser] = None
    labels: List[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Any) -> "LinearIssue":
        f = Fields(payload, source="linear", what="issue")
        assignee = None
        user = f.optional_nested("assignee")
        if user is not None:
            assignee = LinearUser(
                id=user.identifier(),
                name=user.string("name"),
                email=user.string("email"),
            )
        return cls(
            id=f.identifier(),
            title=f.string("title"),
            description=f.string("description"),
            state=f.string("state"),
            assignee=assignee,
            labels=f.strings("labels"),
        )


class LinearAdapter(HTTPSourceAdapter[LinearIssue]):
    """POSTs a GraphQL query and reads the ``issues`` list."""

    name = "linear"
    default_url = "https://api.linear.app/graphql"
    method = "POST"
    envelope_key = "issues"

    def __init__(
        self,
        http: HTTPClient,
        *,
        url: Optional[str] = None,
        token: Optional[str] = None,
        headers: Headers = None,
        query: Optional[str] = None,
    ) -> None:
        super().__init__(http, url=url, token=token, headers=headers)
        self.query = query or DEFAULT_QUERY
        self.headers.setdefault("Content-Type", "application/json")

    def request_body(self) -> str:
        return json.dumps({"query": self.query})

    def parse(self, payload: Any) -> LinearIssue:
        return LinearIssue.from_payload(payload)

    def normalize(self, raw: LinearIssue) -> Item:
        title = first_line(raw.title) or "(untitled issue)"
        content = join_lines(
            raw.description,
            f"State: {raw.state}" if raw.state else None,
            f"Labels: {', '.join(raw.labels)}" if raw.labels else None,
            f"Assignee: {raw.assignee.name}" if raw.assignee else None,
        )
        return Item(make_source_key(self.name, raw.id), title, content)
