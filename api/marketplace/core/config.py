from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

RouteSet = Literal["minimal", "full"]
StorageBackend = Literal["postgres", "memory"]


class Settings(BaseSettings):
    app_name: str = "freelance-marketplace-api"
    environment: str = "dev"
    api_prefix: str = "/api"
    route_set: RouteSet = "full"
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "https://localhost:3000"],
    )
    cors_origin_regex: str | None = None
    body_limit_bytes: int = 10 * 1024 * 1024
    request_timeout_seconds: float = 30.0
    storage_backend: StorageBackend = "postgres"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    database_command_timeout_seconds: float = 15.0
    database_connect_attempts: int = 5
    database_connect_retry_seconds: float = 5.0
    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    auth_timeout_seconds: float = 5.0
    proposal_connect_cost: int = 0
    connect_validity_days: int = 180
    otel_enabled: bool = True
    otel_service_name: str = "freelance-marketplace-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="MP_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
