"""API route definitions."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, UploadFile, status

from classifyx.api.dependencies import (
    get_engine_pool,
    get_labels,
    get_request_handler,
    get_settings_from_request,
    require_api_key,
)
from classifyx.api.errors import PAYLOAD_TOO_LARGE
from classifyx.api.schemas import (
    ClassifyImageResponse,
    ErrorResponse,
    HealthResponse,
    ModelInfo,
)
from classifyx.ml.decision import CONFIDENCE_THRESHOLD

HEARTBEAT_ACK: list[str] = ["ACK Heart beat 1", "ACK Heart beat 2"]

# Liveness stays outside authentication and never touches the pipeline.
public_router = APIRouter(prefix="/api/v1")
router = APIRouter(prefix="/api/v1", dependencies=[Depends(require_api_key)])


@public_router.get(
    "/heartbeat",
    response_model=list[str],
    summary="Liveness check",
)
async def heartbeat() -> list[str]:
    """Return a fixed acknowledgment."""
    return HEARTBEAT_ACK


@router.post(
    "/classify-image",
    response_model=ClassifyImageResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        PAYLOAD_TOO_LARGE: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Classify an image",
)
async def classify_image(request: Request, file: UploadFile) -> ClassifyImageResponse:
    """Return the best label for an uploaded image, or 'None' if no label is confident."""
    handler = get_request_handler(request)
    payload = await file.read()
    result = await handler.classify(payload, file.filename)
    return ClassifyImageResponse(
        image_path=result.image_path,
        predicted_label=result.predicted_label,
        probability=result.probability,
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = get_settings_from_request(request)
    pool = get_engine_pool(request)
    return HealthResponse(
        status="ok",
        gpu=settings.device == "cuda",
        pool_size=pool.size,
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
        labels=len(get_labels(request)),
    )


@router.get(
    "/model",
    response_model=ModelInfo,
    summary="Describe the loaded model",
)
async def model_info(request: Request) -> ModelInfo:
    """Return the active model, its label count and pool configuration."""
    pool = get_engine_pool(request)
    engine = pool.engines[0]
    return ModelInfo(
        name=engine.model_name,
        source=request.app.state.model_source,
        labels=len(get_labels(request)),
        output_size=engine.output_size,
        pool_size=pool.size,
        confidence_threshold=CONFIDENCE_THRESHOLD,
    )
