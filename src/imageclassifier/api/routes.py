"""API route definitions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, UploadFile, status

from imageclassifier.api.middleware import verify_api_key
from imageclassifier.api.schemas import (
    ClassifyImageResponse,
    ErrorResponse,
    HealthResponse,
    ModelInfo,
    ModelsResponse,
)
from imageclassifier.ml.backends import BACKENDS
from imageclassifier.ml.model_manager import MODEL_REGISTRY

if TYPE_CHECKING:
    from imageclassifier.config import Settings
    from imageclassifier.ml.image_classifier import ClassifierBackend
    from imageclassifier.ml.inference import InferencePool
    from imageclassifier.ml.model_manager import ModelManager

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])

_ERROR_RESPONSES: dict[int | str, dict[str, object]] = {
    422: {"model": ErrorResponse},
    status.HTTP_502_BAD_GATEWAY: {"model": ErrorResponse},
    status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
}


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_backend(request: Request) -> ClassifierBackend:
    backend: ClassifierBackend = request.app.state.backend
    return backend


def _get_inference_pool(request: Request) -> InferencePool:
    pool: InferencePool = request.app.state.inference_pool
    return pool


def _get_model_manager(request: Request) -> ModelManager:
    manager: ModelManager = request.app.state.model_manager
    return manager


@router.get(
    "/classify",
    response_model=ClassifyImageResponse,
    responses=_ERROR_RESPONSES,
    summary="Classify the image at a URL",
)
async def classify(
    request: Request,
    url: Annotated[str, Query(description="Absolute http(s) URL of the image")],
) -> ClassifyImageResponse:
    """Fetch the image at ``url`` and return ranked tags."""
    backend = _get_backend(request)
    pool = _get_inference_pool(request)
    result = await pool.run(backend.classify, url)
    return ClassifyImageResponse.from_result(backend.name, result)


@router.post(
    "/classify-image",
    response_model=ClassifyImageResponse,
    responses={
        **_ERROR_RESPONSES,
        413: {"model": ErrorResponse},
    },
    summary="Classify an uploaded image",
)
async def classify_image(request: Request, file: UploadFile) -> ClassifyImageResponse:
    """Classify an uploaded image and return ranked tags."""
    settings = _get_settings(request)
    image_bytes = await file.read(settings.max_file_size + 1)
    if len(image_bytes) > settings.max_file_size:
        raise HTTPException(
            status_code=413,
            detail=f"Upload exceeds {settings.max_file_size} bytes",
        )

    backend = _get_backend(request)
    pool = _get_inference_pool(request)
    result = await pool.run(backend.classify_bytes, image_bytes)
    return ClassifyImageResponse.from_result(backend.name, result)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = _get_settings(request)
    pool = _get_inference_pool(request)
    manager = _get_model_manager(request)
    return HealthResponse(
        status="ok",
        gpu=settings.device == "cuda",
        backend=settings.backend,
        models_loaded=manager.get_loaded_models(),
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )


@router.get(
    "/models",
    response_model=ModelsResponse,
    summary="List available models",
)
async def list_models(request: Request) -> ModelsResponse:
    """Return the models behind each backend and which one is active."""
    settings = _get_settings(request)

    models: list[ModelInfo] = []
    for backend_name, backend_cls in BACKENDS.items():
        spec = MODEL_REGISTRY[backend_cls.MODEL_NAME]
        models.append(
            ModelInfo(
                name=spec.name,
                backend=backend_name,
                top_k=backend_cls.TOP_K,
                status="active" if backend_name == settings.backend else "available",
                license=spec.license,
            )
        )

    return ModelsResponse(models=models)
