"""
tenant_identity.settings

Central configuration model (Pydantic Settings).

Responsibilities:
- Provide strongly-typed, env-driven settings for every layer (API, cloud capabilities, workflows).
- Hide secrets from repr/logging (e.g., JWT secret).
- Offer a cached settings instance for process-level composition.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TENANT_IDENTITY_", case_sensitive=False)

    # Environment controls toggle behavior like auto-init DB tables.
    env: Literal["dev", "test", "prod"] = "dev"
    service_name: str = "tenant-identity"
    log_level: str = "INFO"

    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Internal endpoint auth
    jwt_alg: str = "HS256"
    jwt_issuer: str = "tenant-identity"
    jwt_audience: str = "tenant-identity-internal"
    jwt_secret: str = Field(default="dev-secret-change-me", repr=False)

    # Persistence (User Records, workflow runs, leases, audit)
    database_url: str = "sqlite+aiosqlite:///./tenant_identity.db"

    # Cloud
    aws_region: str = "us-east-1"
    aws_endpoint_url: str | None = None
    aws_connect_timeout_seconds: float = 5.0
    aws_read_timeout_seconds: float = 15.0
    aws_max_attempts: int = 3

    # Externally visible naming; other services look roles up by these names.
    role_prefix: str = "SaaS"

    # Data resources referenced by the rendered access policies.
    table_name_user: str = "User"
    table_name_order: str = "Order"
    table_name_product: str = "Product"

    # Collaborating services
    tenant_service_url: str = "http://localhost:8081"
    token_service_url: str = "http://localhost:8082"
    http_timeout_seconds: float = 10.0

    # Workflow bounds
    call_timeout_seconds: float = 30.0
    workflow_deadline_seconds: float = 120.0
    lease_ttl_seconds: int = 300
    stale_run_seconds: int = 600


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


# --- Module Notes -----------------------------------------------------------
# `api.app.create_app` pins the instance it was built with on `app.state.settings`; request
# dependencies read it from there so tests can run several apps with different settings.
