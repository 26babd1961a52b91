"""Exception classes for the classification pipeline.

Every error carries the ``stage`` of the pipeline that raised it so callers
can tell which step failed without inspecting the message.
"""

from __future__ import annotations

from collections.abc import Sequence


class ClassifierError(Exception):
    """Base class for all pipeline failures."""

    stage: str = "unknown"


class InvalidUrlError(ClassifierError):
    """Raised when the image URL is not an absolute http(s) URL."""

    stage = "url"


class FetchError(ClassifierError):
    """Raised when the image body cannot be retrieved."""

    stage = "fetch"


class DecodeError(ClassifierError):
    """Raised when the fetched bytes are not a supported image encoding."""

    stage = "decode"


class ModelLoadError(ClassifierError):
    """Raised when a model or label file is missing or malformed.

    Only raised during startup; the service must not accept requests after it.
    """

    stage = "model_load"


class UnexpectedOutputShapeError(ClassifierError):
    """Raised when a model produces anything other than a ``[1, N]`` tensor."""

    stage = "inference"

    def __init__(self, shape: Sequence[int]) -> None:
        self.shape = tuple(int(dim) for dim in shape)
        super().__init__(
            "Expected model to produce a [1 N] shaped tensor where N is the number of labels, "
            f"instead it produced one with shape {list(self.shape)}"
        )


class ShapeMismatchError(ClassifierError):
    """Raised when a score vector and a label vocabulary differ in length."""

    stage = "ranking"

    def __init__(self, num_scores: int, num_labels: int) -> None:
        self.num_scores = num_scores
        self.num_labels = num_labels
        super().__init__(f"Got {num_scores} scores for {num_labels} labels")
