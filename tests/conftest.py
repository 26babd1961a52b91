"""Shared test helpers: in-memory images, stub ONNX sessions and mock HTTP."""

from __future__ import annotations

import io
import threading
from types import SimpleNamespace
from typing import TYPE_CHECKING, Any

import httpx
import numpy as np
import pytest
from PIL import Image

from imageclassifier.ml.engine import InferenceEngine
from imageclassifier.ml.fetcher import ImageFetcher

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Sequence

    from numpy.typing import NDArray


def make_image_bytes(
    color: int | tuple[int, ...] = (255, 0, 0),
    size: tuple[int, int] = (10, 10),
    mode: str = "RGB",
    fmt: str = "PNG",
) -> bytes:
    """Encode a solid-color image."""
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format=fmt)
    return buffer.getvalue()


class StubSession:
    """Stands in for ``onnxruntime.InferenceSession``.

    ``scores`` is either a fixed output array or a function of the input tensor.
    """

    def __init__(
        self,
        scores: Sequence[Sequence[float]] | Callable[[NDArray[np.float32]], Any],
        input_name: str = "input",
        output_name: str = "final_result",
        declared_shape: Sequence[int | str] | None = None,
    ) -> None:
        self._scores = scores
        self._input_name = input_name
        self._output_name = output_name
        if declared_shape is None:
            declared_shape = list(np.asarray(scores).shape) if not callable(scores) else ["batch", "classes"]
        self._declared_shape = list(declared_shape)
        self._lock = threading.Lock()
        self.calls = 0

    def get_inputs(self) -> list[SimpleNamespace]:
        return [SimpleNamespace(name=self._input_name, shape=["batch", 224, 224, 3])]

    def get_outputs(self) -> list[SimpleNamespace]:
        return [SimpleNamespace(name=self._output_name, shape=self._declared_shape)]

    def run(self, output_names: list[str] | None, input_feed: dict[str, Any], run_options: Any = None) -> list[Any]:
        assert output_names == [self._output_name]
        with self._lock:
            self.calls += 1
        tensor = input_feed[self._input_name]
        if callable(self._scores):
            return [np.asarray(self._scores(tensor), dtype=np.float64)]
        return [np.asarray(self._scores, dtype=np.float64)]


def make_engine(session: StubSession, labels: Sequence[str]) -> InferenceEngine:
    return InferenceEngine(session, labels, input_name="input", output_name="final_result")


class ImageServer:
    """Serves fixed bodies per URL through ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.routes: dict[str, httpx.Response | Exception] = {}
        self.requests: list[httpx.Request] = []
        self._lock = threading.Lock()

    def add(self, url: str, body: bytes, status_code: int = 200) -> str:
        self.routes[url] = httpx.Response(status_code, content=body, headers={"Content-Type": "image/png"})
        return url

    def fail(self, url: str, exc: Exception) -> str:
        self.routes[url] = exc
        return url

    def handler(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)
        route = self.routes.get(str(request.url))
        if route is None:
            return httpx.Response(404)
        if isinstance(route, Exception):
            raise route
        return httpx.Response(route.status_code, content=route.content, headers=route.headers)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture()
def image_server() -> ImageServer:
    return ImageServer()


@pytest.fixture()
def fetcher(image_server: ImageServer) -> Iterator[ImageFetcher]:
    instance = ImageFetcher(timeout=5.0, max_bytes=1_000_000, transport=image_server.transport())
    yield instance
    instance.close()


@pytest.fixture()
def red_png() -> bytes:
    return make_image_bytes((255, 0, 0))
