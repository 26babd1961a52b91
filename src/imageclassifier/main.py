"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from imageclassifier.api.errors import register_exception_handlers
from imageclassifier.api.middleware import log_requests
from imageclassifier.api.routes import router
from imageclassifier.config import get_settings
from imageclassifier.errors import ModelLoadError
from imageclassifier.ml.backends import create_backend
from imageclassifier.ml.fetcher import ImageFetcher
from imageclassifier.ml.inference import InferencePool
from imageclassifier.ml.model_manager import OnnxModelManager

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: load the model on startup, clean up on shutdown.

    A model that fails to load aborts startup, so no request is ever served
    by a partially initialized backend.
    """
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)

    logger.info(
        "Starting ImageClassifier (backend=%s, device=%s, max_concurrent=%s)",
        settings.backend,
        settings.device,
        settings.max_concurrent,
    )

    model_manager = OnnxModelManager(settings)
    fetcher = ImageFetcher.from_settings(settings)
    try:
        backend = create_backend(settings, model_manager, fetcher)
    except ModelLoadError:
        logger.critical("Could not load model for backend %s, refusing to start", settings.backend)
        fetcher.close()
        raise

    inference_pool = InferencePool(settings)
    app.state.model_manager = model_manager
    app.state.fetcher = fetcher
    app.state.backend = backend
    app.state.inference_pool = inference_pool

    logger.info("ImageClassifier ready")
    yield

    logger.info("Shutting down ImageClassifier")
    inference_pool.shutdown()
    fetcher.close()
    model_manager.shutdown()
    logger.info("ImageClassifier shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="ImageClassifier",
        description="Classify images fetched from a URL with a pluggable ONNX backend",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.middleware("http")(log_requests)
    register_exception_handlers(application)

    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """Serve the application with uvicorn on the configured host and port."""
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
