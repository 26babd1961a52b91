"""Classifier backends and the startup-time backend selector.

A backend composes the pipeline stages into a single ``classify(url)`` call:

    ImageFetcher -> preprocess -> InferenceEngine -> rank

Variants differ only in their model, preprocessing constants and top-K.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, ClassVar

from imageclassifier.ml.preprocessing import PreprocessingParams, preprocess
from imageclassifier.ml.ranking import TopK, rank

if TYPE_CHECKING:
    from imageclassifier.config import Settings
    from imageclassifier.ml.engine import InferenceEngine
    from imageclassifier.ml.fetcher import ImageFetcher
    from imageclassifier.ml.image_classifier import ClassificationResult, ClassifierBackend
    from imageclassifier.ml.model_manager import ModelManager

logger = logging.getLogger(__name__)


class PipelineBackend:
    """Fetch, preprocess, infer and rank with fixed per-variant constants.

    Subclasses set ``NAME``, ``MODEL_NAME``, ``PARAMS`` and ``TOP_K``. Errors
    from any stage propagate unchanged.
    """

    NAME: ClassVar[str]
    MODEL_NAME: ClassVar[str]
    PARAMS: ClassVar[PreprocessingParams]
    TOP_K: ClassVar[TopK]

    def __init__(
        self,
        engine: InferenceEngine,
        fetcher: ImageFetcher,
        max_image_pixels: int | None = None,
    ) -> None:
        self._engine = engine
        self._fetcher = fetcher
        self._max_image_pixels = max_image_pixels

    @property
    def name(self) -> str:
        return self.NAME

    @property
    def model_name(self) -> str:
        return self.MODEL_NAME

    def classify(self, url: str) -> ClassificationResult:
        image_bytes = self._fetcher.fetch(url)
        return self.classify_bytes(image_bytes)

    def classify_bytes(self, image_bytes: bytes) -> ClassificationResult:
        tensor = preprocess(image_bytes, self.PARAMS, max_pixels=self._max_image_pixels)
        scores = self._engine.classify(tensor)
        result = rank(scores, self._engine.labels, self.TOP_K)

        best = result.best
        if best is not None:
            logger.info("Best match: %s (%.2f%% likely)", best.label, best.score * 100)
        return result


class Inception5hBackend(PipelineBackend):
    """Inception (inception5h graph); returns the full ranked vocabulary."""

    NAME = "inception5h"
    MODEL_NAME = "inception5h"
    # Trained on 224x224 RGB, channels converted with (value - 117) / 1.
    PARAMS = PreprocessingParams(target_width=224, target_height=224, channel_count=3, mean=117.0, scale=1.0)
    TOP_K = "all"


class NinImageNetBackend(PipelineBackend):
    """Network-in-Network trained on ImageNet; returns the top five labels."""

    NAME = "nin_imagenet"
    MODEL_NAME = "nin_imagenet"
    PARAMS = PreprocessingParams(target_width=224, target_height=224, channel_count=3, mean=128.0, scale=64.0)
    TOP_K = 5


BACKENDS: dict[str, type[PipelineBackend]] = {
    Inception5hBackend.NAME: Inception5hBackend,
    NinImageNetBackend.NAME: NinImageNetBackend,
}


def create_backend(
    settings: Settings,
    model_manager: ModelManager,
    fetcher: ImageFetcher,
) -> ClassifierBackend:
    """Build the backend selected by ``settings.backend``, loading its model.

    Raises:
        KeyError: If the configured backend is unknown.
        ModelLoadError: If the backend's model cannot be loaded.
    """
    try:
        backend_cls = BACKENDS[settings.backend]
    except KeyError:
        raise KeyError(f"Unknown backend: {settings.backend}") from None

    engine = model_manager.load(backend_cls.MODEL_NAME)
    logger.info("Using backend %s (model=%s, top_k=%s)", backend_cls.NAME, backend_cls.MODEL_NAME, backend_cls.TOP_K)
    return backend_cls(engine, fetcher, max_image_pixels=settings.max_image_pixels)
