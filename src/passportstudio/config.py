"""Environment-based configuration for PassportStudio."""

from __future__ import annotations

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from passportstudio.imaging.raster import parse_color

DEFAULT_ENHANCEMENT_PROMPT = (
    "Convert the input into a professional, frontal, head-and-shoulders portrait. "
    "Preserve the subject's identity and facial features while frontalizing the head "
    "so the subject faces the camera with a neutral expression. Dress the subject in "
    "professional business attire (a dark blazer and collared shirt) with visible "
    "shoulders and render a clean white studio background. Photorealistic, high detail, "
    "natural skin tones, professional studio lighting."
)


class Settings(BaseSettings):
    """Application settings loaded from PASSPORTSTUDIO_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PASSPORTSTUDIO_",
        case_sensitive=False,
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8083

    # Authentication (None = disabled)
    api_key: str | None = None

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"
    models_dir: str = "models"

    # Model selection
    face_detection_model: str = "yunet_2023mar"
    segmentation_model: str = "u2net_human_seg"
    segmentation_enabled: bool = True
    detection_score_threshold: float = Field(default=0.6, gt=0.0, le=1.0)
    segmentation_threshold: float = Field(default=0.7, gt=0.0, lt=1.0)

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)

    # Concurrency
    max_concurrent: int = Field(default=2, ge=1)
    queue_timeout: float = Field(default=5.0, gt=0.0)

    # Input limits
    max_image_pixels: int = Field(default=50_000_000, ge=1)
    max_file_size: int = Field(default=52_428_800, ge=1)
    fetch_timeout: float = Field(default=30.0, gt=0.0)

    # Model management
    model_ttl: int = Field(default=300, ge=0)
    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)

    # Output frame
    output_width: int = Field(default=600, ge=1)
    output_height: int = Field(default=800, ge=1)
    background_color: str = "#ffffff"

    # Crop geometry
    crop_margin: float = Field(default=0.6, ge=0.0)
    vertical_margin_factor: float = Field(default=1.4, ge=0.0)
    face_height_ratio: float = Field(default=0.5, gt=0.0)
    eye_line_ratio: float = Field(default=0.35, ge=0.0, le=1.0)

    # Enhancement gateway (None = disabled)
    enhancement_url: str | None = None
    enhancement_api_key: str | None = None
    enhancement_timeout: float = Field(default=120.0, gt=0.0)
    enhancement_prompt: str = DEFAULT_ENHANCEMENT_PROMPT
    enhancement_negative_prompt: str = ""
    enhancement_width: int = Field(default=1200, ge=1)
    enhancement_height: int = Field(default=1600, ge=1)

    @field_validator("background_color")
    @classmethod
    def _validate_background_color(cls, value: str) -> str:
        parse_color(value)
        return value


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
