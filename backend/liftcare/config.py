from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="LC_", case_sensitive=False)
    """Application runtime configuration."""

    app_name: str = "LiftCare"
    environment: str = "development"
    host: str = "127.0.0.1"
    port: int = 3000
    log_level: str = "INFO"

    database_url: str = "sqlite:///./data/liftcare.db"
    storage_dir: Path = Path("./data/files")
    public_base_url: str = "http://127.0.0.1:3000"
    export_dir: Path = Path("./data/exports")

    timezone: str = os.getenv("TZ", "UTC")

    token_secret: str = "change-me"
    token_ttl_minutes: int = 7 * 24 * 60

    cors_origins: str = "*"

    serialize_clock_events: bool = True

    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_from: Optional[str] = None
    smtp_from_name: Optional[str] = None
    smtp_use_tls: bool = True
    smtp_use_ssl: bool = False

    @field_validator("timezone")
    @classmethod
    def _default_timezone(cls, value: str) -> str:
        return value.strip() or "UTC"

    @property
    def cors_origin_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def sqlite_path(self) -> Optional[Path]:
        prefix = "sqlite:///"
        if not self.database_url.startswith(prefix):
            return None
        raw = self.database_url[len(prefix):]
        if not raw or raw == ":memory:":
            return None
        return Path(raw)


settings = Settings()

# Ensure essential directories exist
if settings.sqlite_path is not None:
    settings.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
settings.storage_dir.mkdir(parents=True, exist_ok=True)
settings.export_dir.mkdir(parents=True, exist_ok=True)
