"""Tests for score ranking."""

from __future__ import annotations

import numpy as np
import pytest

from imageclassifier.errors import ShapeMismatchError
from imageclassifier.ml.image_classifier import CategoryScore
from imageclassifier.ml.ranking import rank


class TestRank:
    def test_sorts_descending_by_score(self) -> None:
        result = rank([0.1, 0.7, 0.2], ["cat", "dog", "bird"])
        assert result.as_pairs() == [("dog", 0.7), ("bird", 0.2), ("cat", 0.1)]

    def test_ties_keep_label_index_order(self) -> None:
        result = rank([0.3, 0.5, 0.3, 0.5, 0.3], ["a", "b", "c", "d", "e"])
        assert [entry.label for entry in result] == ["b", "d", "a", "c", "e"]

    def test_ties_are_not_broken_alphabetically(self) -> None:
        result = rank([0.5, 0.5], ["zebra", "ant"])
        assert [entry.label for entry in result] == ["zebra", "ant"]

    def test_output_is_non_increasing(self) -> None:
        rng = np.random.default_rng(7)
        scores = rng.integers(0, 5, size=200).astype(float) / 4
        labels = [f"label-{i}" for i in range(200)]

        result = rank(scores, labels)

        ranked = list(result)
        assert len(ranked) == 200
        for first, second in zip(ranked, ranked[1:], strict=False):
            assert first.score >= second.score
            if first.score == second.score:
                assert labels.index(first.label) < labels.index(second.label)

    def test_top_k_truncates(self) -> None:
        result = rank([0.1, 0.4, 0.3, 0.2], ["a", "b", "c", "d"], top_k=2)
        assert result.as_pairs() == [("b", 0.4), ("c", 0.3)]

    def test_top_k_larger_than_vocabulary_returns_all(self) -> None:
        result = rank([0.1, 0.4], ["a", "b"], top_k=5)
        assert len(result) == 2

    def test_top_k_zero_returns_empty(self) -> None:
        result = rank([0.1, 0.4], ["a", "b"], top_k=0)
        assert len(result) == 0
        assert result.best is None

    def test_accepts_batch_shaped_row(self) -> None:
        result = rank(np.array([[0.2, 0.8]]), ["a", "b"])
        assert result.best == CategoryScore(label="b", score=0.8)

    def test_scores_are_python_floats(self) -> None:
        result = rank(np.array([0.25, 0.75], dtype=np.float32), ["a", "b"])
        assert all(type(entry.score) is float for entry in result)

    @pytest.mark.parametrize(("scores", "labels"), [([0.1, 0.2, 0.3], ["a", "b"]), ([0.1], ["a", "b"]), ([], ["a"])])
    def test_length_mismatch_raises(self, scores: list[float], labels: list[str]) -> None:
        with pytest.raises(ShapeMismatchError) as exc_info:
            rank(scores, labels)
        assert exc_info.value.num_scores == len(scores)
        assert exc_info.value.num_labels == len(labels)
        assert exc_info.value.stage == "ranking"

    @pytest.mark.parametrize("top_k", [-1, "some", 2.5, True])
    def test_invalid_top_k_raises(self, top_k: object) -> None:
        with pytest.raises(ValueError, match="top_k"):
            rank([0.1, 0.2], ["a", "b"], top_k=top_k)  # type: ignore[arg-type]

    def test_result_is_immutable(self) -> None:
        result = rank([0.9, 0.1], ["red", "blue"])
        with pytest.raises(AttributeError):
            result.entries[0].score = 0.0  # type: ignore[misc]
