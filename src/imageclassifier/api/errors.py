"""Map pipeline exceptions to HTTP error responses."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import Request, status
from fastapi.responses import JSONResponse

from imageclassifier.errors import (
    ClassifierError,
    DecodeError,
    FetchError,
    InvalidUrlError,
    ShapeMismatchError,
    UnexpectedOutputShapeError,
)

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)

# Plain codes: Starlette deprecated the 413/422 constant names.
_STATUS_BY_ERROR: tuple[tuple[type[ClassifierError], int], ...] = (
    (InvalidUrlError, 422),
    (DecodeError, 422),
    (FetchError, status.HTTP_502_BAD_GATEWAY),
    (UnexpectedOutputShapeError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (ShapeMismatchError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def status_for(exc: ClassifierError) -> int:
    """Return the HTTP status code for a pipeline error."""
    for error_cls, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def _classifier_error_handler(request: Request, exc: ClassifierError) -> JSONResponse:
    code = status_for(exc)
    logger.warning("Classification failed at stage %s (%s %s): %s", exc.stage, request.method, request.url.path, exc)
    return JSONResponse(status_code=code, content={"detail": str(exc), "stage": exc.stage})


async def _timeout_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Classifier is busy, try again later"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the pipeline error handlers on an application."""
    app.add_exception_handler(ClassifierError, _classifier_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(TimeoutError, _timeout_handler)
