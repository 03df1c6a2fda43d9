"""Error taxonomy for commdash.

Every error raised by the package derives from :class:`CommdashError`.

- :class:`TransportError` / :class:`ExecError` — a source could not be
  reached.  Recoverable: the orchestrator skips that source for the cycle.
- :class:`DecodeError` — a reachable source returned a malformed payload.
  Same recoverable treatment.
- :class:`ConstraintError` — a write violated a data-integrity constraint.
  Aborts only the current transaction.
- :class:`StorageError` — the engine is unavailable or corrupt.  Fatal for
  the current refresh cycle.
- :class:`NotInitializedError` — the engine was used before ``initialize()``.
"""

from __future__ import annotations

from typing import Any, Iterable


class CommdashError(Exception):
    """Base exception for all commdash errors."""

    def __init__(self, message: str = "", **details: Any) -> None:
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Flatten to dict for structured logging and reports."""
        return {"type": type(self).__name__, "message": self.message, **self.details}


# ── Transport (request/response) ──────────────────────────────────


class TransportError(CommdashError):
    """Base class for request/response transport failures."""


class NetworkError(TransportError):
    """Connection-level failure (DNS, refused, reset, ...)."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Network error: {reason}", reason=reason)


class InvalidURLError(TransportError):
    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"Invalid URL: {url}", url=url)


class TransportTimeoutError(TransportError):
    def __init__(self, seconds: float) -> None:
        self.seconds = seconds
        super().__init__(f"Request timed out after {seconds:g} seconds", seconds=seconds)


class HTTPStatusError(TransportError):
    """Server answered with a non-success status code."""

    def __init__(self, status: int, message: str = "") -> None:
        self.status = status
        self.reason = message
        super().__init__(f"HTTP error {status}: {message}", status=status)


class EndpointNotFoundError(TransportError):
    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"Endpoint not found: {url}", url=url)


class MissingHeadersError(TransportError):
    def __init__(self, headers: Iterable[str]) -> None:
        self.headers = list(headers)
        super().__init__(
            f"Missing required headers: {', '.join(self.headers)}",
            headers=self.headers,
        )


# ── Command execution ─────────────────────────────────────────────


class ExecError(CommdashError):
    """Base class for command-execution failures."""


class CommandNotFoundError(ExecError):
    def __init__(self, command: str) -> None:
        self.command = command
        super().__init__(f"Command not found: {command}", command=command)


class CommandFailedError(ExecError):
    def __init__(self, exit_code: int, stderr: str = "") -> None:
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(
            f"Command failed with exit code {exit_code}: {stderr}",
            exit_code=exit_code,
        )


class CommandTimeoutError(ExecError):
    def __init__(self, seconds: float) -> None:
        self.seconds = seconds
        super().__init__(f"Command timed out after {seconds:g} seconds", seconds=seconds)


class WorkingDirectoryMismatchError(ExecError):
    def __init__(self, expected: str, actual: str | None) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Working directory mismatch: expected {expected}, got {actual}",
            expected=expected,
            actual=actual,
        )


class EnvironmentMismatchError(ExecError):
    def __init__(self) -> None:
        super().__init__("Environment variables mismatch")


# ── Payload decoding ──────────────────────────────────────────────


class DecodeError(CommdashError):
    """A provider payload could not be decoded into records.

    Attributes
    ----------
    source:
        Provider name, when known.
    """

    def __init__(self, message: str, *, source: str = "") -> None:
        self.source = source
        prefix = f"[{source}] " if source else ""
        super().__init__(f"{prefix}{message}", source=source)


# ── Storage ───────────────────────────────────────────────────────


class StorageError(CommdashError):
    """Engine-level failure; the enclosing transaction was rolled back."""


class ConstraintError(StorageError):
    """A write violated a UNIQUE, CHECK, NOT NULL or FOREIGN KEY constraint."""


class NotInitializedError(CommdashError):
    """The storage engine was used before ``initialize()``."""

    def __init__(self, operation: str = "") -> None:
        self.operation = operation
        what = f" (operation: {operation})" if operation else ""
        super().__init__(f"Storage engine is not initialized{what}", operation=operation)


# ── Config / fixtures ─────────────────────────────────────────────


class ConfigError(CommdashError):
    """Configuration file could not be read or has invalid values."""


class FixtureError(CommdashError):
    """Base class for fixture loading failures."""


class FixtureNotFoundError(FixtureError):
    def __init__(self, filename: str) -> None:
        self.filename = filename
        super().__init__(f"Fixture file not found: {filename}", filename=filename)


class EmptyFixtureError(FixtureError):
    def __init__(self, filename: str) -> None:
        self.filename = filename
        super().__init__(f"Fixture file is empty: {filename}", filename=filename)


class FixtureDecodeError(FixtureError):
    def __init__(self, filename: str, reason: str) -> None:
        self.filename = filename
        super().__init__(
            f"Failed to decode fixture file {filename}: {reason}",
            filename=filename,
        )


class SourceTimeoutError(CommdashError):
    """An adapter did not finish within the orchestrator's fetch timeout."""

    def __init__(self, source: str, seconds: float) -> None:
        self.source = source
        self.seconds = seconds
        super().__init__(
            f"{source} did not respond within {seconds:g} seconds",
            source=source,
            seconds=seconds,
        )


# Errors an adapter may raise that only cost its own contribution to a cycle.
SOURCE_ERRORS: tuple[type[CommdashError], ...] = (TransportError, ExecError, DecodeError)
