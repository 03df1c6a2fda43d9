"""In-memory transport doubles.

Every registration holds exactly one :data:`~commdash.outcome.Outcome`:
``Success(body)`` or ``Failure(error)``.  Nothing is installed globally;
hand the mock to the adapters that should use it.
"""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from commdash.errors import (
    CommandNotFoundError,
    EndpointNotFoundError,
    EnvironmentMismatchError,
    ExecError,
    InvalidURLError,
    MissingHeadersError,
    TransportError,
    WorkingDirectoryMismatchError,
)
from commdash.outcome import Failure, Outcome, Success
from commdash.transport.http import Headers, HTTPClient
from commdash.transport.shell import Environment, ShellExecutor

# ── HTTP ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RecordedRequest:
    method: str
    url: str
    body: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class _Endpoint:
    outcome: Outcome
    required_headers: Optional[Dict[str, str]] = None
    delay: float = 0.0


class MockHTTPClient(HTTPClient):
    """:class:`HTTPClient` answering from registered per-URL outcomes.

    Unregistered URLs raise :class:`EndpointNotFoundError`; non-http(s)
    URLs raise :class:`InvalidURLError`.  Registrations match on URL for
    every method.  All calls are recorded in :attr:`requests`.
    """

    def __init__(self) -> None:
        self._endpoints: Dict[str, _Endpoint] = {}
        self.requests: List[RecordedRequest] = []

    def register_response(
        self,
        url: str,
        response: str,
        *,
        required_headers: Optional[Dict[str, str]] = None,
        delay: float = 0.0,
    ) -> None:
        """Answer *url* with *response*, optionally after *delay* seconds."""
        self._endpoints[url] = _Endpoint(Success(response), dict(required_headers or {}) or None, delay)

    def register_error(self, url: str, error: TransportError, *, delay: float = 0.0) -> None:
        self._endpoints[url] = _Endpoint(Failure(error), None, delay)

    def reset(self) -> None:
        self._endpoints.clear()
        self.requests.clear()

    async def request(
        self,
        method: str,
        url: str,
        *,
        body: Optional[str] = None,
        headers: Headers = None,
    ) -> str:
        self.requests.append(RecordedRequest(method, url, body, dict(headers or {})))

        if not url.startswith(("http://", "https://")):
            raise InvalidURLError(url)

        endpoint = self._endpoints.get(url)
        if endpoint is None:
            raise EndpointNotFoundError(url)
        if endpoint.delay:
            await asyncio.sleep(endpoint.delay)
        if isinstance(endpoint.outcome, Failure):
            raise endpoint.outcome.error

        if endpoint.required_headers:
            provided = headers or {}
            missing = [
                key for key, value in endpoint.required_headers.items()
                if provided.get(key) != value
            ]
            if missing:
                raise MissingHeadersError(missing)

        return endpoint.outcome.value


# ── Shell ─────────────────────────────────────────────────────────


class InteractionKind(str, enum.Enum):
    PROMPT = "prompt"
    INPUT = "input"
    OUTPUT = "output"


@dataclass(frozen=True)
class Interaction:
    """One step of a scripted interactive session."""

    kind: InteractionKind
    text: str

    @classmethod
    def prompt(cls, text: str) -> "Interaction":
        return cls(InteractionKind.PROMPT, text)

    @classmethod
    def input(cls, text: str) -> "Interaction":
        return cls(InteractionKind.INPUT, text)

    @classmethod
    def output(cls, text: str) -> "Interaction":
        return cls(InteractionKind.OUTPUT, text)


@dataclass(frozen=True)
class _Command:
    outcome: Outcome
    working_directory: Optional[str] = None
    environment: Optional[Dict[str, str]] = None
    delay: float = 0.0


class MockShellExecutor(ShellExecutor):
    """:class:`ShellExecutor` answering from registered per-command outcomes.

    When a registration names a working directory or environment, the call
    must supply exactly that value or it fails with
    :class:`WorkingDirectoryMismatchError` / :class:`EnvironmentMismatchError`.
    Every executed command is appended to :attr:`history`.
    """

    def __init__(self) -> None:
        self._commands: Dict[str, _Command] = {}
        self._interactive: Dict[str, List[Interaction]] = {}
        self.history: List[str] = []

    def register_output(
        self,
        command: str,
        output: str,
        *,
        working_directory: Optional[str] = None,
        environment: Optional[Dict[str, str]] = None,
        delay: float = 0.0,
    ) -> None:
        self._commands[command] = _Command(
            Success(output),
            working_directory,
            dict(environment) if environment is not None else None,
            delay,
        )

    def register_error(self, command: str, error: ExecError, *, delay: float = 0.0) -> None:
        self._commands[command] = _Command(Failure(error), delay=delay)

    def register_interactive(self, command: str, interactions: Sequence[Interaction]) -> None:
        self._interactive[command] = list(interactions)

    def reset(self) -> None:
        self._commands.clear()
        self._interactive.clear()
        self.history.clear()

    async def execute(
        self,
        command: str,
        *,
        working_directory: Optional[str] = None,
        environment: Environment = None,
    ) -> str:
        self.history.append(command)

        registered = self._commands.get(command)
        if registered is None:
            raise CommandNotFoundError(command)
        if registered.delay:
            await asyncio.sleep(registered.delay)
        if isinstance(registered.outcome, Failure):
            raise registered.outcome.error

        if registered.working_directory is not None and registered.working_directory != working_directory:
            raise WorkingDirectoryMismatchError(registered.working_directory, working_directory)
        if registered.environment is not None and registered.environment != environment:
            raise EnvironmentMismatchError()

        return registered.outcome.value

    async def execute_interactive(
        self,
        command: str,
        inputs: Sequence[str],
        *,
        working_directory: Optional[str] = None,
        environment: Environment = None,
    ) -> str:
        """Replay a scripted session; returns the last scripted output."""
        self.history.append(command)

        interactions = self._interactive.get(command)
        if interactions is None:
            raise CommandNotFoundError(command)

        output = ""
        for step in interactions:
            if step.kind is InteractionKind.OUTPUT:
                output = step.text
        return output
