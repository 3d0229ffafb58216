"""
Retrieval of catalogs, manifests and archives over HTTP.
"""
from __future__ import annotations

import json
import logging
from logging import Logger
from typing import Any, Protocol
from urllib.parse import urlparse

import httpx

from .exceptions import NetworkError, ValidationError

__all__ = [
    "Fetcher",
    "HttpFetcher",
]

DEFAULT_TIMEOUT = 30.0
"""
Request timeout in seconds.
"""

DEFAULT_MAX_SIZE = 512 * 1024 * 1024
"""
Maximum size of a response body in bytes.
"""

USER_AGENT = "shelfsync/1.0"


class Fetcher(Protocol):
    """
    Interface to retrieve remote resources.
    """

    async def fetch_bytes(self, url: str) -> bytes:
        ...

    async def fetch_json(self, url: str) -> Any:
        ...


class HttpFetcher:
    """
    Fetcher backed by an `httpx.AsyncClient`. Use as an async context
    manager to close the underlying client when done.
    """

    _client: httpx.AsyncClient
    _max_size: int
    _logger: Logger

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        max_size: int = DEFAULT_MAX_SIZE,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: Logger | None = None,
    ):
        """
        :param timeout: Request timeout in seconds
        :param max_size: Maximum accepted response size in bytes
        :param transport: Transport to use instead of the network, e.g. `httpx.MockTransport`
        :param logger: Logger to use, or `None` to use default logger
        """
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
            transport=transport,
        )
        self._max_size = max_size
        self._logger = logger or logging.getLogger()

    async def __aenter__(self) -> HttpFetcher:
        return self

    async def __aexit__(self, *_):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    async def fetch_bytes(self, url: str) -> bytes:
        """
        Get response body, raising {obj}`NetworkError` upon failure.
        """
        _validate_url(url)
        self._logger.debug(f"Fetching '{url}'")

        try:
            async with self._client.stream("GET", url) as response:
                response.raise_for_status()

                content_length = _parse_content_length(response, url)
                if (content_length or 0) > self._max_size:
                    raise NetworkError(
                        f"Response from '{url}' too large: {content_length} bytes"
                    )

                chunks: list[bytes] = []
                size = 0

                async for chunk in response.aiter_bytes():
                    size += len(chunk)
                    if size > self._max_size:
                        raise NetworkError(
                            f"Response from '{url}' exceeded {self._max_size} bytes"
                        )
                    chunks.append(chunk)

        except httpx.HTTPStatusError as e:
            raise NetworkError(
                f"Request to '{url}' failed with status {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Request to '{url}' failed: {e}") from e

        return b"".join(chunks)

    async def fetch_json(self, url: str) -> Any:
        """
        Get response body decoded as JSON.
        """
        body = await self.fetch_bytes(url)

        try:
            return json.loads(body)
        except ValueError as e:
            raise ValidationError([f"Invalid JSON from '{url}': {e}"]) from e


def _validate_url(url: str):
    """
    Ensure URL is absolute http(s).
    """
    parsed = urlparse(url)

    if parsed.scheme not in ("http", "https"):
        raise NetworkError(
            f"Invalid URL scheme '{parsed.scheme}' in '{url}', only http/https allowed"
        )
    if not parsed.netloc:
        raise NetworkError(f"Invalid URL, missing hostname: '{url}'")


def _parse_content_length(response: httpx.Response, url: str) -> int | None:
    value = response.headers.get("Content-Length")
    if value is None:
        return None

    try:
        return int(value)
    except ValueError as e:
        raise NetworkError(
            f"Invalid Content-Length '{value}' in response from '{url}'"
        ) from e
