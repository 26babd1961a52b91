"""Environment-based configuration for the image classifier service."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from IMAGECLASSIFIER_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="IMAGECLASSIFIER_",
        case_sensitive=False,
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8080
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Authentication (None = disabled)
    api_key: str | None = None

    # Backend selection (fixed for the lifetime of the process)
    backend: Literal["inception5h", "nin_imagenet"] = "inception5h"

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # Model files
    models_dir: str = "models"
    model_repo_id: str = "lindquister/imageclassifier-models"

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)
    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)

    # Concurrency
    max_concurrent: int = Field(default=2, ge=1)

    # Image fetching
    fetch_timeout: float = Field(default=10.0, gt=0)

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=20_971_520, ge=1)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
