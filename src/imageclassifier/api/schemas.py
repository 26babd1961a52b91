"""Pydantic request/response schemas for the image classifier API."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from imageclassifier.ml.image_classifier import ClassificationResult


class ImageTag(BaseModel):
    """A single classification tag with its model score."""

    label: str
    score: float = Field(description="Raw model score, usually a probability (0.0-1.0)")


class ClassifyImageResponse(BaseModel):
    """Response for the classification endpoints, highest score first."""

    backend: str
    tags: list[ImageTag]

    @classmethod
    def from_result(cls, backend: str, result: ClassificationResult) -> ClassifyImageResponse:
        return cls(
            backend=backend,
            tags=[ImageTag(label=entry.label, score=entry.score) for entry in result],
        )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    gpu: bool
    backend: str
    models_loaded: list[str]
    concurrent_requests: int
    queue_depth: int


class ModelInfo(BaseModel):
    """Information about an available model."""

    name: str
    backend: str
    top_k: int | str = Field(description="Number of tags returned, or 'all'")
    status: str = Field(description="Model status: 'active' or 'available'")
    license: str


class ModelsResponse(BaseModel):
    """Response for the models listing endpoint."""

    models: list[ModelInfo]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
    stage: str | None = None
