import os
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Project Paths
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    DATA_DIR: Path = Path(
        os.getenv("TRACKVAULT_DATA_DIR", str(BASE_DIR.parent / "data"))
    )

    # Media root the folder structure is derived from (None disables it)
    MEDIA_PATH: Optional[Path] = None

    # Database
    DB_NAME: str = "trackvault.db"

    @property
    def DB_PATH(self) -> Path:
        return self.DATA_DIR / self.DB_NAME

    @property
    def DB_URL(self) -> str:
        # Use forward slashes so Windows paths work in the URL (no backslash escapes)
        path = self.DB_PATH.resolve().as_posix()
        return f"sqlite:///{path}"

    @property
    def ARTWORK_DIR(self) -> Path:
        return self.DATA_DIR / "artwork"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_RETENTION: str = "10 days"
    LOG_ROTATION: str = "10 MB"

    # Performance & Debugging
    DB_ECHO: bool = False  # Enable SQLAlchemy query logging

    # Scanner caches (seconds)
    ENTITY_CACHE_TTL: int = 30 * 60
    COVER_CACHE_TTL: int = 24 * 60 * 60

    # Scanner parallelism (files scanned at once)
    SCAN_MAX_WORKERS: int = 4


settings = Settings()

# Ensure data directory exists
settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
