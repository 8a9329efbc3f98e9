"""Settings for the UX Insight backend and workers.

Values come from defaults, then a ``.env`` file, then ``UXINSIGHT_*``
environment variables (nested sections use ``__``, e.g.
``UXINSIGHT_CLASSIFIER__HESITATION_MS=8000``).
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


class ClassifierConfig(BaseModel):
    repeated_clicks: int = Field(default=3, ge=2, description="consecutive clicks on one element")
    repeated_deletions: int = Field(default=5, ge=2, description="consecutive delete-like inputs on one field")
    long_interaction_ms: float = Field(default=10_000, gt=0)
    hesitation_ms: float = Field(default=5_000, gt=0, description="idle time before a hesitation")
    hesitation_interval_ms: float = Field(default=5_000, gt=0, description="idle check cadence")
    position_window: int = Field(default=100, gt=0)
    min_move_px: float = Field(default=5.0, ge=0)
    detect_deletions: bool = True


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    format: str = Field(default="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    file: Optional[str] = None


class Settings(BaseSettings):
    model_config = {
        "env_prefix": "UXINSIGHT_",
        "env_nested_delimiter": "__",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    api_host: str = "0.0.0.0"
    api_port: int = Field(default=8123, ge=1, le=65535)
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    # set to an empty string to run the API without the ingest queue
    redis_url: Optional[str] = "redis://localhost:6379/0"
    events_queue: str = "events"

    # start a server-side hesitation timer for each recording session
    hesitation_timer: bool = True

    data_dir: Path = Path("data")

    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


@lru_cache
def get_settings() -> Settings:
    return Settings()
