"""Blocking image retrieval over HTTP(S)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from imageclassifier.errors import FetchError, InvalidUrlError

if TYPE_CHECKING:
    from imageclassifier.config import Settings

logger = logging.getLogger(__name__)

_ALLOWED_SCHEMES = frozenset({"http", "https"})
_CHUNK_SIZE = 65_536


def validate_url(url: str) -> httpx.URL:
    """Parse an absolute http(s) URL.

    Raises:
        InvalidUrlError: If the URL cannot be parsed or is not absolute http(s).
    """
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError) as exc:
        raise InvalidUrlError(f"Invalid URL {url!r}: {exc}") from exc

    if parsed.scheme not in _ALLOWED_SCHEMES or not parsed.host:
        raise InvalidUrlError(f"Expected an absolute http(s) URL, got {url!r}")
    return parsed


class ImageFetcher:
    """Downloads the full body of an image URL.

    One shared ``httpx.Client`` serves all threads. No retries or caching are
    performed; every call makes exactly one request.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        max_bytes: int | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._max_bytes = max_bytes
        self._client = httpx.Client(
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings, transport: httpx.BaseTransport | None = None) -> ImageFetcher:
        return cls(
            timeout=settings.fetch_timeout,
            max_bytes=settings.max_file_size,
            transport=transport,
        )

    def fetch(self, url: str) -> bytes:
        """Retrieve the resource body at ``url``.

        Raises:
            InvalidUrlError: If ``url`` is not an absolute http(s) URL.
            FetchError: On connection failures, timeouts, non-2xx statuses,
                truncated or oversized bodies.
        """
        parsed = validate_url(url)
        try:
            with self._client.stream("GET", parsed) as response:
                response.raise_for_status()
                body = self._read_body(response)
        except httpx.HTTPStatusError as exc:
            raise FetchError(f"Fetching {url} returned HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise FetchError(f"Fetching {url} failed: {exc!r}") from exc

        logger.debug("Fetched %d bytes from %s", len(body), parsed.host)
        return body

    def _read_body(self, response: httpx.Response) -> bytes:
        buffer = bytearray()
        for chunk in response.iter_bytes(chunk_size=_CHUNK_SIZE):
            buffer.extend(chunk)
            if self._max_bytes is not None and len(buffer) > self._max_bytes:
                raise FetchError(f"Image body exceeds {self._max_bytes} bytes")
        return bytes(buffer)

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()
