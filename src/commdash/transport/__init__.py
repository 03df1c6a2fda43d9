"""Transport capabilities the source adapters fetch through."""

from commdash.transport.http import HTTPClient, RequestsHTTPClient, validate_url
from commdash.transport.mock import (
    Interaction,
    InteractionKind,
    MockHTTPClient,
    MockShellExecutor,
    RecordedRequest,
)
from commdash.transport.shell import ShellExecutor, SubprocessShellExecutor

__all__ = [
    "HTTPClient",
    "Interaction",
    "InteractionKind",
    "MockHTTPClient",
    "MockShellExecutor",
    "RecordedRequest",
    "RequestsHTTPClient",
    "ShellExecutor",
    "SubprocessShellExecutor",
    "validate_url",
]
