from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="BAHNGATE_", env_file=".env", extra="ignore")

    app_name: str = "bahngate"
    env: str = "dev"
    host: str = "0.0.0.0"  # nosec B104 - intentional for container deployments
    port: int = 3000
    version: str = "1.0.0"

    # Shared store. Unset means caching and rate limiting run permanently degraded.
    redis_url: str | None = Field(default=None, validation_alias="REDIS_URL")
    redis_connect_timeout: float = Field(default=10.0, validation_alias="REDIS_CONNECT_TIMEOUT")
    redis_command_timeout: float = Field(default=5.0, validation_alias="REDIS_COMMAND_TIMEOUT")

    # Store reconnection
    redis_reconnect_base_delay: float = Field(
        default=0.1, validation_alias="REDIS_RECONNECT_BASE_DELAY"
    )
    redis_reconnect_max_delay: float = Field(
        default=5.0, validation_alias="REDIS_RECONNECT_MAX_DELAY"
    )
    redis_max_reconnect_attempts: int = Field(
        default=10, validation_alias="REDIS_MAX_RECONNECT_ATTEMPTS"
    )

    # Response cache
    cache_default_ttl: int = Field(default=300, validation_alias="CACHE_DEFAULT_TTL")
    cache_max_value_size: int = Field(
        default=1024 * 1024, validation_alias="CACHE_MAX_VALUE_SIZE"
    )  # 1 MiB

    # Rate Limiting
    enable_rate_limiting: bool = Field(default=True, validation_alias="ENABLE_RATE_LIMITING")
    rate_limit_requests: int = Field(default=30, validation_alias="RATE_LIMIT_REQUESTS")
    rate_limit_window: int = Field(default=60, validation_alias="RATE_LIMIT_WINDOW")
    rate_limit_window_mode: Literal["sliding", "fixed"] = Field(
        default="sliding", validation_alias="RATE_LIMIT_WINDOW_MODE"
    )

    # Observability
    enable_metrics: bool = Field(default=True, validation_alias="ENABLE_METRICS")
    log_level: str = "INFO"


settings = Settings()
