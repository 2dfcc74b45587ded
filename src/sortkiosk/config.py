"""Environment-based configuration for SortKiosk."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from SORTKIOSK_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SORTKIOSK_",
        case_sensitive=False,
    )

    # Server
    host: str = "127.0.0.1"
    port: int = 8080

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)
    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)

    # Concurrency
    max_concurrent: int = Field(default=1, ge=1)

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=20_971_520, ge=1)

    # Model artifacts (repo id None = read from models_dir only)
    models_dir: str = "models"
    model_repo_id: str | None = None
    model_filename: str = "model.onnx"
    metadata_filename: str = "metadata.json"

    # Camera
    rear_camera_index: int | None = None
    front_camera_index: int | None = None
    default_camera_index: int = Field(default=0, ge=0)
    camera_width: int = Field(default=640, ge=1)
    camera_height: int = Field(default=480, ge=1)
    camera_ready_timeout: float = Field(default=10.0, gt=0)
    secure_context: bool = True

    # Flow timings
    sorting_dwell_seconds: float = Field(default=3.0, ge=0)
    reward_countdown: int = Field(default=3, ge=0)
    countdown_tick_seconds: float = Field(default=1.0, ge=0)
    handoff_delay_seconds: float = Field(default=0.5, ge=0)
    reward_url: str = "https://green-badge-zeta.vercel.app/"

    # Recognition dialog
    runners_up: int = Field(default=2, ge=0)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
