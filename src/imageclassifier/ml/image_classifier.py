"""Classification result types and the backend protocol."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Iterator


@dataclass(frozen=True)
class CategoryScore:
    """A single label with its model score."""

    label: str
    score: float


@dataclass(frozen=True)
class ClassificationResult:
    """Category scores from one classify call, highest score first."""

    entries: tuple[CategoryScore, ...]

    @property
    def best(self) -> CategoryScore | None:
        """Return the top entry, or None for an empty result."""
        return self.entries[0] if self.entries else None

    def as_pairs(self) -> list[tuple[str, float]]:
        return [(entry.label, entry.score) for entry in self.entries]

    def __iter__(self) -> Iterator[CategoryScore]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


class ClassifierBackend(Protocol):
    """Protocol for interchangeable classification backends."""

    @property
    def name(self) -> str:
        """Return the backend identifier string."""
        ...

    @property
    def model_name(self) -> str:
        """Return the name of the model the backend runs."""
        ...

    def classify(self, url: str) -> ClassificationResult:
        """Fetch an image and classify it.

        Args:
            url: Absolute http(s) URL of the image.

        Returns:
            Ranked classification result.

        Raises:
            ClassifierError: A subclass naming the stage that failed.
        """
        ...

    def classify_bytes(self, image_bytes: bytes) -> ClassificationResult:
        """Classify an already-retrieved encoded image."""
        ...
