"""Pydantic request/response schemas for the ClassifyX API."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ClassifyImageResponse(BaseModel):
    """Best label for an uploaded image."""

    model_config = ConfigDict(populate_by_name=True)

    image_path: str = Field(alias="imagePath", description="Identifier of the staged upload")
    predicted_label: str = Field(alias="predictedLabel", description="Best label, or 'None' below the threshold")
    probability: float = Field(description="Highest score in the probability vector")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    gpu: bool
    pool_size: int
    concurrent_requests: int
    queue_depth: int
    labels: int


class ModelInfo(BaseModel):
    """Information about the loaded classification model."""

    name: str
    source: str = Field(description="Model source: 'local' or 'huggingface'")
    labels: int
    output_size: int | None
    pool_size: int
    confidence_threshold: float


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
