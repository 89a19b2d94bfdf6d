# distsync/config/settings.py

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_name: str = "distsync"
    environment: Literal["dev", "test", "prod"] = "dev"
    debug: bool = False
    version: str = "0.1.0"

    # --- Redis ---
    redis_url: str = "redis://localhost:6379/0"
    redis_max_connections: int = Field(default=50, gt=0)
    redis_socket_timeout_seconds: float = Field(default=5.0, gt=0)
    cache_default_ttl_seconds: int = Field(default=3600, gt=0)

    # --- Locks and semaphores ---
    lock_ttl_seconds: float = Field(default=30, gt=0)
    lock_max_retries: int = Field(default=10, ge=0)
    lock_retry_delay_ms: int = Field(default=100, ge=0)

    # --- Rate limiting ---
    rate_limit_requests: int = Field(default=100, gt=0)
    rate_limit_window_seconds: int = Field(default=60, gt=0)
    rate_limit_auth_requests: int = Field(default=10, gt=0)
    rate_limit_auth_window_seconds: int = Field(default=60, gt=0)
    rate_limit_auth_paths: list[str] = ["/auth"]
    rate_limit_exempt_paths: list[str] = ["/health"]

    # --- Observability ---
    enable_metrics: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @property
    def lock_retry_delay_seconds(self) -> float:
        return self.lock_retry_delay_ms / 1000


@lru_cache
def get_settings() -> AppSettings:
    return AppSettings()


# Singleton for direct import (e.g. in infrastructure clients)
settings = get_settings()
