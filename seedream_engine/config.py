"""Pipeline configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .utils import getenv_float, getenv_int

API_ENDPOINT = "https://ark.ap-southeast.bytepluses.com/api/v3/images/generations"
MODEL_ID = "seedream-4-5-251128"
DEFAULT_DOWNLOAD_DIR = "./generated_images"
API_KEY_ENV = "ARK_API_KEY"


@dataclass(frozen=True)
class PipelineConfig:
    api_endpoint: str = API_ENDPOINT
    model_id: str = MODEL_ID
    api_timeout_s: float = 180.0
    download_timeout_s: float = 30.0
    max_parallel_api_calls: int = 2
    max_parallel_downloads: int = 4
    retry_attempts: int = 2
    retry_delay_s: float = 1.0
    max_batch_count: int = 15

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        defaults = cls()
        return cls(
            api_endpoint=os.getenv("SEEDREAM_API_ENDPOINT", "").strip() or defaults.api_endpoint,
            model_id=os.getenv("SEEDREAM_MODEL_ID", "").strip() or defaults.model_id,
            api_timeout_s=getenv_float("SEEDREAM_API_TIMEOUT_S", defaults.api_timeout_s),
            download_timeout_s=getenv_float("SEEDREAM_DOWNLOAD_TIMEOUT_S", defaults.download_timeout_s),
            max_parallel_api_calls=max(1, getenv_int("SEEDREAM_MAX_PARALLEL_API_CALLS", defaults.max_parallel_api_calls)),
            max_parallel_downloads=max(1, getenv_int("SEEDREAM_MAX_PARALLEL_DOWNLOADS", defaults.max_parallel_downloads)),
            retry_attempts=max(0, getenv_int("SEEDREAM_RETRY_ATTEMPTS", defaults.retry_attempts)),
            retry_delay_s=getenv_float("SEEDREAM_RETRY_DELAY_S", defaults.retry_delay_s),
        )


def get_api_key() -> str | None:
    value = os.getenv(API_KEY_ENV, "").strip()
    return value or None
