"""FastAPI exception handlers for pipeline errors.

Client errors echo their message. Server errors are logged with the request
path and answered with a fixed message so internal detail stays private.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import Request, status
from fastapi.responses import JSONResponse

from classifyx.errors import (
    BadInput,
    ClassifyXError,
    DecisionError,
    InferenceError,
    PayloadTooLarge,
    PoolExhausted,
    StagingError,
)

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)

# Starlette renamed the 413 constant across releases; the number is stable
PAYLOAD_TOO_LARGE = 413

_SERVER_ERRORS: dict[type[ClassifyXError], tuple[int, str]] = {
    PoolExhausted: (status.HTTP_503_SERVICE_UNAVAILABLE, "All inference engines are busy, retry later"),
    StagingError: (status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to store the uploaded image"),
    InferenceError: (status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to process the image"),
    DecisionError: (status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to classify the image"),
}


async def bad_input_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map invalid uploads to 400 (413 when too large)."""
    status_code = PAYLOAD_TOO_LARGE if isinstance(exc, PayloadTooLarge) else status.HTTP_400_BAD_REQUEST
    logger.info("Rejected upload on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


async def server_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map server-side pipeline failures to 5xx without leaking details."""
    status_code, detail = status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error"
    for error_type, mapping in _SERVER_ERRORS.items():
        if isinstance(exc, error_type):
            status_code, detail = mapping
            break
    logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc, exc_info=exc)
    return JSONResponse(status_code=status_code, content={"detail": detail})


def register_error_handlers(app: FastAPI) -> None:
    """Install the pipeline exception handlers on ``app``."""
    app.add_exception_handler(BadInput, bad_input_handler)
    app.add_exception_handler(ClassifyXError, server_error_handler)
