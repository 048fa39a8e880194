"""Environment-based configuration for AnimalID."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

FIVE_MEGABYTES = 5 * 1024 * 1024


class Settings(BaseSettings):
    """Application settings loaded from ANIMALID_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="ANIMALID_",
        case_sensitive=False,
        protected_namespaces=("settings_",),
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8082

    # Authentication (None = disabled)
    api_key: str | None = None

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # Classifier model: MobileNet family fixed by (version, alpha)
    model_version: int = 2
    model_alpha: float = 1.0
    model_repo_id: str | None = None
    models_dir: str = "models"
    top_k: int = Field(default=3, ge=1)

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)
    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)

    # Concurrency
    max_concurrent: int = Field(default=2, ge=1)

    # Upload limits
    max_file_size: int = Field(default=FIVE_MEGABYTES, ge=1)
    min_image_side: int = Field(default=50, ge=1)
    canvas_size: int = Field(default=224, ge=1)

    # Result filtering
    min_probability: float = Field(default=0.15, ge=0.0, le=1.0)
    label_denylist: list[str] = Field(default_factory=lambda: ["nematode", "background"])

    # Search
    debounce_seconds: float = Field(default=0.8, ge=0.0)

    # Encyclopedia
    encyclopedia_url: str = "https://{lang}.wikipedia.org/api/rest_v1/page/summary/"
    primary_language: str = "pt"
    secondary_language: str = "en"
    secondary_prefix: str = "(English) "
    http_timeout: float = Field(default=10.0, gt=0.0)
    user_agent: str = "AnimalID/0.1 (animal identification service)"


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
