"""Environment-based configuration for ClassifyX."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from CLASSIFYX_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CLASSIFYX_",
        case_sensitive=False,
        protected_namespaces=(),
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8082
    log_level: str = "INFO"

    # Authentication (None = disabled)
    api_key: str | None = None

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # Model source: a local file, or a file on the Hugging Face Hub
    model_path: str | None = None
    model_repo_id: str | None = None
    model_filename: str = "model.onnx"
    model_subfolder: str | None = None
    models_dir: str = "models"

    # Pipeline paths
    labels_path: str = "labels.txt"
    temp_dir: str = "temp_images"

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)
    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)

    # Engine pool (0 = wait for a free engine indefinitely)
    pool_size: int = Field(default=2, ge=1)
    pool_acquire_timeout: float = Field(default=5.0, ge=0)

    # Preprocessing
    input_size: int = Field(default=224, ge=1)
    input_mean: float = 117.0
    input_scale: float = 1.0
    channels_last: bool = True

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=209_715_200, ge=1)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
