"""Turn a raw score vector into a ranked classification result.

Ties are broken by ascending label index: a stable sort on the negated scores
keeps equal scores in vocabulary order.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

import numpy as np

from imageclassifier.errors import ShapeMismatchError
from imageclassifier.ml.image_classifier import CategoryScore, ClassificationResult

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import ArrayLike

TopK = int | Literal["all"]


def rank(scores: ArrayLike, labels: Sequence[str], top_k: TopK = "all") -> ClassificationResult:
    """Pair scores with labels and sort them descending.

    Args:
        scores: One score per label, indexed like ``labels``.
        labels: Label vocabulary.
        top_k: Number of entries to keep, or ``"all"``.

    Raises:
        ShapeMismatchError: If ``scores`` and ``labels`` differ in length.
        ValueError: If ``top_k`` is negative or not ``"all"``.
    """
    vector = np.asarray(scores, dtype=np.float64).reshape(-1)
    if vector.shape[0] != len(labels):
        raise ShapeMismatchError(vector.shape[0], len(labels))

    if top_k == "all":
        limit = len(labels)
    elif isinstance(top_k, int) and not isinstance(top_k, bool) and top_k >= 0:
        limit = min(top_k, len(labels))
    else:
        raise ValueError(f"top_k must be a non-negative int or 'all', got {top_k!r}")

    order = np.argsort(-vector, kind="stable")[:limit]
    return ClassificationResult(
        entries=tuple(CategoryScore(label=labels[i], score=float(vector[i])) for i in order),
    )
