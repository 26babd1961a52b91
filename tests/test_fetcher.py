"""Tests for the HTTP image fetcher."""

from __future__ import annotations

import httpx
import pytest
from conftest import ImageServer

from imageclassifier.config import Settings
from imageclassifier.errors import FetchError, InvalidUrlError
from imageclassifier.ml.fetcher import ImageFetcher, validate_url


class TestValidateUrl:
    @pytest.mark.parametrize(
        "url",
        ["http://images.test/cat.png", "https://images.test:8443/a/b.jpg?size=large"],
    )
    def test_accepts_absolute_http_urls(self, url: str) -> None:
        assert validate_url(url).host == "images.test"

    @pytest.mark.parametrize(
        "url",
        ["", "not a url", "/relative/cat.png", "ftp://images.test/cat.png", "file:///etc/passwd", "http://"],
    )
    def test_rejects_invalid_urls(self, url: str) -> None:
        with pytest.raises(InvalidUrlError) as exc_info:
            validate_url(url)
        assert exc_info.value.stage == "url"


class TestImageFetcher:
    def test_returns_full_body(self, fetcher: ImageFetcher, image_server: ImageServer) -> None:
        url = image_server.add("http://images.test/cat.png", b"\x89PNG" + b"x" * 200_000)
        assert fetcher.fetch(url) == b"\x89PNG" + b"x" * 200_000

    def test_one_request_per_call(self, fetcher: ImageFetcher, image_server: ImageServer) -> None:
        url = image_server.add("http://images.test/cat.png", b"data")
        fetcher.fetch(url)
        fetcher.fetch(url)
        assert len(image_server.requests) == 2

    def test_invalid_url_makes_no_request(self, fetcher: ImageFetcher, image_server: ImageServer) -> None:
        with pytest.raises(InvalidUrlError):
            fetcher.fetch("images.test/cat.png")
        assert image_server.requests == []

    @pytest.mark.parametrize("status_code", [404, 500, 302])
    def test_non_2xx_raises_fetch_error(self, status_code: int) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(status_code))
        fetcher = ImageFetcher(transport=transport)
        with pytest.raises(FetchError, match=str(status_code)) as exc_info:
            fetcher.fetch("http://images.test/missing.png")
        assert isinstance(exc_info.value.__cause__, httpx.HTTPStatusError)
        fetcher.close()

    @pytest.mark.parametrize(
        "error",
        [httpx.ConnectError("Connection refused"), httpx.ReadTimeout("timed out"), httpx.RemoteProtocolError("cut")],
    )
    def test_transport_errors_raise_fetch_error(
        self, fetcher: ImageFetcher, image_server: ImageServer, error: Exception
    ) -> None:
        url = image_server.fail("http://unreachable.test/cat.png", error)
        with pytest.raises(FetchError) as exc_info:
            fetcher.fetch(url)
        assert exc_info.value.__cause__ is error
        assert exc_info.value.stage == "fetch"

    def test_follows_redirects(self, fetcher: ImageFetcher, image_server: ImageServer) -> None:
        image_server.routes["http://images.test/old.png"] = httpx.Response(
            301, headers={"Location": "http://images.test/new.png"}
        )
        image_server.add("http://images.test/new.png", b"moved")
        assert fetcher.fetch("http://images.test/old.png") == b"moved"

    def test_oversized_body_raises_fetch_error(self, image_server: ImageServer) -> None:
        url = image_server.add("http://images.test/huge.png", b"x" * 2048)
        fetcher = ImageFetcher(max_bytes=1024, transport=image_server.transport())
        with pytest.raises(FetchError, match="exceeds 1024 bytes"):
            fetcher.fetch(url)
        fetcher.close()

    def test_from_settings(self, image_server: ImageServer) -> None:
        settings = Settings(fetch_timeout=1.5, max_file_size=10)
        url = image_server.add("http://images.test/cat.png", b"x" * 11)
        fetcher = ImageFetcher.from_settings(settings, transport=image_server.transport())
        with pytest.raises(FetchError):
            fetcher.fetch(url)
        fetcher.close()
