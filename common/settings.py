from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings

PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    # Location of the YAML config (tag whitelist, parser + resolver tuning)
    config_path: Path = Field(default=PROJECT_ROOT / "config" / "config.yaml")

    # Overrides app.log_level from the YAML when set
    log_level: str | None = None

    class Config:
        env_prefix = "CITE_STREAM_"
        env_file = ".env"


settings = Settings()
