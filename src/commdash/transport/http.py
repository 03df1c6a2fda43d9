"""Request/response transport capability.

Adapters talk to the network exclusively through :class:`HTTPClient`, so
tests and the offline fixture mode can hand them a
:class:`~commdash.transport.mock.MockHTTPClient` instead.
"""

from __future__ import annotations

import abc
import asyncio
import logging
from typing import Dict, Optional
from urllib.parse import urlparse

import requests

from commdash.errors import (
    EndpointNotFoundError,
    HTTPStatusError,
    InvalidURLError,
    NetworkError,
    TransportTimeoutError,
)

logger = logging.getLogger(__name__)

Headers = Optional[Dict[str, str]]


def validate_url(url: str) -> None:
    """Raise :class:`InvalidURLError` unless *url* is an absolute http(s) URL."""
    parsed = urlparse(url or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidURLError(url)


class HTTPClient(abc.ABC):
    """Abstract request/response client.

    Every method returns the response body as text or raises a
    :class:`~commdash.errors.TransportError` subclass.
    """

    @abc.abstractmethod
    async def request(
        self,
        method: str,
        url: str,
        *,
        body: Optional[str] = None,
        headers: Headers = None,
    ) -> str:
        """Send one request and return the response body."""

    async def get(self, url: str, *, headers: Headers = None) -> str:
        return await self.request("GET", url, headers=headers)

    async def post(self, url: str, body: str = "", *, headers: Headers = None) -> str:
        return await self.request("POST", url, body=body, headers=headers)

    async def put(self, url: str, body: str = "", *, headers: Headers = None) -> str:
        return await self.request("PUT", url, body=body, headers=headers)

    async def delete(self, url: str, *, headers: Headers = None) -> str:
        return await self.request("DELETE", url, headers=headers)


class RequestsHTTPClient(HTTPClient):
    """:class:`HTTPClient` backed by a :mod:`requests` session.

    Blocking calls run in a worker thread so adapters stay cooperative.

    Parameters
    ----------
    timeout:
        Per-request timeout in seconds.
    session:
        Optional pre-configured :class:`requests.Session`.
    default_headers:
        Headers merged under every request's own headers.
    """

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
        default_headers: Headers = None,
    ) -> None:
        self.timeout = float(timeout)
        self._session = session or requests.Session()
        self._default_headers = dict(default_headers or {})

    async def request(
        self,
        method: str,
        url: str,
        *,
        body: Optional[str] = None,
        headers: Headers = None,
    ) -> str:
        validate_url(url)
        return await asyncio.to_thread(self._send, method, url, body, headers)

    def _send(self, method: str, url: str, body: Optional[str], headers: Headers) -> str:
        merged = {**self._default_headers, **(headers or {})}
        try:
            r = self._session.request(
                method,
                url,
                data=body.encode("utf-8") if body is not None else None,
                headers=merged,
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise TransportTimeoutError(self.timeout) from exc
        except (requests.exceptions.InvalidURL, requests.exceptions.MissingSchema,
                requests.exceptions.InvalidSchema) as exc:
            raise InvalidURLError(url) from exc
        except requests.RequestException as exc:
            raise NetworkError(str(exc)) from exc

        logger.debug("[http] %s %s → %d", method, url, r.status_code)
        if r.status_code == 404:
            raise EndpointNotFoundError(url)
        if r.status_code >= 400:
            raise HTTPStatusError(r.status_code, (r.text or r.reason or "").strip()[:500])
        return r.text

    def close(self) -> None:
        self._session.close()
