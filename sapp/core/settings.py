"""Configuration and environment settings for the sapp categorization backend."""

import os

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_workers() -> int:
    return max(1, os.cpu_count() or 1)


class Settings(BaseSettings):
    """Application settings for the sapp categorization backend."""

    groq_api_key: str = ""
    generation_backend: str = "groq"
    generation_model: str = "llama-3.3-70b-versatile"
    generation_temperature: float = 0.2
    generation_max_completion_tokens: int = 2048
    generation_top_p: float = 0.95
    generation_stop: list[str] | None = None
    generation_json_mode: bool = True
    generation_timeout_seconds: float = 60.0
    database_url: str = "sqlite:///jobs/sapp.db"
    num_workers: int = Field(default_factory=_default_workers, ge=1)
    queue_size: int = Field(default=100, ge=1)
    enqueue_timeout_seconds: float = 5.0
    max_attempts: int = Field(default=3, ge=1)
    amount_tolerance: float = 0.01
    stale_job_timeout_seconds: float = 600.0
    sweep_interval_seconds: float = Field(default=30.0, ge=0)
    seed_categories: bool = True
    server_host: str = "127.0.0.1"
    server_port: int = 8000

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


def get_settings() -> "Settings":
    """Return an instance of the application settings."""
    return Settings()
