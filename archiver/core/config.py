from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    app_name: str = "Link Archiver API"
    environment: Literal["dev", "test", "prod"] = "dev"
    debug: bool = False
    log_level: str = "INFO"

    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"])

    storage_dir: str = "data/archives"
    allowed_content_types: list[str] = Field(default_factory=lambda: ["application/pdf", "image/jpeg"])
    request_timeout_seconds: float = Field(default=10.0, gt=0)
    max_file_size_mb: int = Field(default=10, ge=1)
    max_processing_tasks: int = Field(default=3, ge=1)

    download_retries: int = Field(default=0, ge=0)
    retry_backoff_seconds: float = Field(default=0.5, ge=0)
    shutdown_grace_seconds: float = Field(default=0.0, ge=0)

    @field_validator("allowed_content_types")
    @classmethod
    def _normalize_content_types(cls, value: list[str]) -> list[str]:
        return [item.strip().lower() for item in value if item.strip()]

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
