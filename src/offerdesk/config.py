"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from .env or OFFERDESK_* environment variables."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "env_prefix": "OFFERDESK_"}

    # Storage
    data_dir: str = "./data"
    db_file: str = "offerdesk.db"

    # Market timezone used to anchor free-text expiration times
    timezone: str = "America/Los_Angeles"

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    @property
    def data_path(self) -> Path:
        p = Path(self.data_dir).expanduser()
        p.mkdir(parents=True, exist_ok=True)
        return p

    @property
    def db_path(self) -> Path:
        return self.data_path / self.db_file


def get_settings() -> Settings:
    return Settings()
