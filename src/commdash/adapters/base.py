"""Abstract source adapter interface.

Every provider (Slack, Gmail, Linear, GitHub, Calendar) implements
:class:`SourceAdapter`.  The orchestrator talks to providers exclusively
through this interface and only ever sees normalized :class:`Item` objects.
"""

from __future__ import annotations

import abc
import json
import logging
from typing import Any, Generic, List, Mapping, Optional, TypeVar

from commdash.errors import DecodeError
from commdash.models import Item
from commdash.transport.http import Headers, HTTPClient
from commdash.transport.shell import Environment, ShellExecutor

logger = logging.getLogger(__name__)

RawT = TypeVar("RawT")

TITLE_MAX_CHARS = 120


class SourceAdapter(abc.ABC, Generic[RawT]):
    """Fetches one provider's records and normalizes them into items.

    Subclasses set :attr:`name` and implement :meth:`fetch` and
    :meth:`normalize`.  Transport failures propagate unchanged from
    :meth:`fetch`; malformed payloads raise :class:`DecodeError`.
    """

    name: str = ""

    @abc.abstractmethod
    async def fetch(self) -> List[RawT]:
        """Fetch and decode the provider payload into raw records."""

    @abc.abstractmethod
    def normalize(self, raw: RawT) -> Item:
        """Map one raw record to an :class:`Item` with a non-empty title."""

    async def collect(self) -> List[Item]:
        """Fetch, then normalize every record."""
        records = await self.fetch()
        items = [self.normalize(raw) for raw in records]
        logger.debug("[%s] Collected %d items", self.name, len(items))
        return items

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class HTTPSourceAdapter(SourceAdapter[RawT]):
    """Adapter that reads one JSON envelope over :class:`HTTPClient`.

    Args:
        http: Transport used for the request.
        url: Endpoint override; defaults to :attr:`default_url`.
        token: Sent as ``Authorization: Bearer <token>`` when given.
        headers: Extra headers, applied after the token header.
    """

    default_url: str = ""
    method: str = "GET"
    envelope_key: str = ""

    def __init__(
        self,
        http: HTTPClient,
        *,
        url: Optional[str] = None,
        token: Optional[str] = None,
        headers: Headers = None,
    ) -> None:
        self.http = http
        self.url = url or self.default_url
        self.headers: dict[str, str] = {}
        if token:
            self.headers["Authorization"] = f"Bearer {token}"
        self.headers.update(headers or {})

    def request_body(self) -> Optional[str]:
        return None

    async def fetch(self) -> List[RawT]:
        body = await self.http.request(
            self.method,
            self.url,
            body=self.request_body(),
            headers=self.headers or None,
        )
        records = decode_envelope(body, self.envelope_key, source=self.name)
        return [self.parse(record) for record in records]

    @abc.abstractmethod
    def parse(self, payload: Any) -> RawT:
        """Decode one envelope entry into a raw record."""


class CommandSourceAdapter(SourceAdapter[RawT]):
    """Adapter that reads one JSON envelope from a command's stdout."""

    default_command: str = ""
    envelope_key: str = ""

    def __init__(
        self,
        shell: ShellExecutor,
        *,
        command: Optional[str] = None,
        working_directory: Optional[str] = None,
        environment: Environment = None,
    ) -> None:
        self.shell = shell
        self.command = command or self.default_command
        self.working_directory = working_directory
        self.environment = dict(environment) if environment else None

    async def fetch(self) -> List[RawT]:
        output = await self.shell.execute(
            self.command,
            working_directory=self.working_directory,
            environment=self.environment,
        )
        records = decode_envelope(output, self.envelope_key, source=self.name)
        return [self.parse(record) for record in records]

    @abc.abstractmethod
    def parse(self, payload: Any) -> RawT:
        """Decode one envelope entry into a raw record."""


# ── payload helpers ───────────────────────────────────────────────


def decode_envelope(body: str, key: str, *, source: str) -> List[Any]:
    """Parse *body* as JSON and return the list stored under *key*."""
    try:
        data = json.loads(body)
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"Response is not valid JSON: {exc}", source=source) from exc
    if not isinstance(data, dict):
        raise DecodeError(f"Expected a JSON object, got {type(data).__name__}", source=source)
    if key not in data:
        raise DecodeError(f"Missing envelope key {key!r}", source=source)
    records = data[key]
    if not isinstance(records, list):
        raise DecodeError(f"{key!r} must be a list, got {type(records).__name__}", source=source)
    return records


_MISSING = object()


class Fields:
    """Typed accessor over one JSON object.

    Every getter takes one or more alternative key names (camelCase first,
    then snake_case) and raises :class:`DecodeError` on a missing or
    mistyped required field.
    """

    def __init__(self, payload: Any, *, source: str, what: str = "record") -> None:
        if not isinstance(payload, Mapping):
            raise DecodeError(
                f"{what} must be an object, got {type(payload).__name__}", source=source
            )
        self._payload = payload
        self._source = source
        self._what = what

    def _lookup(self, names: tuple[str, ...]) -> Any:
        for name in names:
            if name in self._payload:
                return self._payload[name]
        return _MISSING

    def _fail(self, names: tuple[str, ...], problem: str) -> DecodeError:
        return DecodeError(f"{self._what}.{names[0]} {problem}", source=self._source)

    def identifier(self, *names: str) -> str:
        """Required id; integers are accepted and rendered as text."""
        names = names or ("id",)
        value = self._lookup(names)
        if isinstance(value, bool) or not isinstance(value, (str, int)):
            raise self._fail(names, "is missing or not a string")
        text = str(value)
        if not text:
            raise self._fail(names, "must not be empty")
        return text

    def string(self, *names: str) -> str:
        value = self._lookup(names)
        if not isinstance(value, str):
            raise self._fail(names, "is missing or not a string")
        return value

    def optional_string(self, *names: str) -> Optional[str]:
        value = self._lookup(names)
        if value is _MISSING or value is None:
            return None
        if not isinstance(value, str):
            raise self._fail(names, "is not a string")
        return value

    def number(self, *names: str) -> float:
        value = self._lookup(names)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise self._fail(names, "is missing or not a number")
        return float(value)

    def boolean(self, *names: str) -> bool:
        value = self._lookup(names)
        if not isinstance(value, bool):
            raise self._fail(names, "is missing or not a boolean")
        return value

    def strings(self, *names: str) -> List[str]:
        value = self._lookup(names)
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise self._fail(names, "is missing or not a list of strings")
        return list(value)

    def nested(self, *names: str) -> "Fields":
        value = self._lookup(names)
        if value is _MISSING:
            raise self._fail(names, "is missing")
        return Fields(value, source=self._source, what=f"{self._what}.{names[0]}")

    def optional_nested(self, *names: str) -> Optional["Fields"]:
        value = self._lookup(names)
        if value is _MISSING or value is None:
            return None
        return Fields(value, source=self._source, what=f"{self._what}.{names[0]}")


def first_line(text: str, limit: int = TITLE_MAX_CHARS) -> str:
    """First non-blank line of *text*, cut to *limit* characters."""
    for line in text.splitlines():
        line = line.strip()
        if line:
            if len(line) > limit:
                return line[: limit - 1].rstrip() + "…"
            return line
    return ""


def join_lines(*parts: Optional[str]) -> str:
    """Join the non-empty parts with newlines."""
    return "\n".join(p.strip() for p in parts if p and p.strip())
