"""ONNX inference engine: a loaded model plus its label vocabulary.

The session and labels are read-only after construction and shared by every
request thread. Each ``classify`` call passes its own ``RunOptions`` so that
concurrent runs never share per-run state.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

import numpy as np
from onnxruntime import RunOptions

from imageclassifier.errors import ModelLoadError, UnexpectedOutputShapeError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

logger = logging.getLogger(__name__)


class Session(Protocol):
    """The subset of ``onnxruntime.InferenceSession`` the engine relies on."""

    def get_inputs(self) -> list[Any]: ...

    def get_outputs(self) -> list[Any]: ...

    def run(
        self,
        output_names: list[str] | None,
        input_feed: dict[str, Any],
        run_options: RunOptions | None = None,
    ) -> list[Any]: ...


def read_labels(path: str | Path) -> tuple[str, ...]:
    """Read a label vocabulary file: UTF-8, one label per line.

    Raises:
        ModelLoadError: If the file is missing, unreadable or empty.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ModelLoadError(f"Failed to read labels [{path}]: {exc}") from exc

    labels = [line.strip() for line in text.splitlines()]
    while labels and not labels[-1]:
        labels.pop()
    if not labels:
        raise ModelLoadError(f"Label file [{path}] is empty")
    return tuple(labels)


class InferenceEngine:
    """Runs a loaded model against preprocessed tensors."""

    def __init__(
        self,
        session: Session,
        labels: Sequence[str],
        input_name: str | None = None,
        output_name: str | None = None,
    ) -> None:
        if not labels:
            raise ModelLoadError("Label vocabulary is empty")
        self._session = session
        self._labels = tuple(labels)
        try:
            self._input_name = input_name or session.get_inputs()[0].name
            self._output_name = output_name or session.get_outputs()[0].name
        except IndexError as exc:
            raise ModelLoadError("Model declares no inputs or outputs") from exc
        self._check_output_width()

    @property
    def labels(self) -> tuple[str, ...]:
        return self._labels

    @property
    def input_name(self) -> str:
        return self._input_name

    @property
    def output_name(self) -> str:
        return self._output_name

    def classify(self, tensor: NDArray[np.float32]) -> NDArray[np.float64]:
        """Execute the forward pass and return one score per label.

        Args:
            tensor: Preprocessed input, shape ``[1, H, W, C]``.

        Returns:
            1-D float64 array; index ``i`` scores ``labels[i]``.

        Raises:
            UnexpectedOutputShapeError: If the output is not shaped ``[1, N]``.
        """
        outputs = self._session.run(
            [self._output_name],
            {self._input_name: tensor},
            run_options=RunOptions(),
        )
        result = np.asarray(outputs[0])
        if result.ndim != 2 or result.shape[0] != 1:
            raise UnexpectedOutputShapeError(result.shape)
        return result[0].astype(np.float64)

    def _check_output_width(self) -> None:
        """Fail fast when the model statically declares a width that is not the vocabulary size."""
        for output in self._session.get_outputs():
            if output.name != self._output_name:
                continue
            shape = getattr(output, "shape", None)
            if not shape or not isinstance(shape[-1], int):
                return
            if shape[-1] != len(self._labels):
                raise ModelLoadError(
                    f"Model output '{self._output_name}' has {shape[-1]} classes but "
                    f"{len(self._labels)} labels were loaded"
                )
            return
        raise ModelLoadError(f"Model has no output named '{self._output_name}'")
