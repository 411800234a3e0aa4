from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class BackendSettings(BaseSettings):
    model_config = SettingsConfigDict(extra="forbid")

    database_url: str

    # Admin is authenticated via environment variables, not stored in the database.
    admin_email: str | None = None
    admin_password: str | None = None
    # Fall back to well-known placeholder credentials when ADMIN_* is unset.
    allow_insecure_defaults: bool = True

    access_api_key: str | None = None

    # Connectivity summary only; the engine connects through database_url.
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "insforge"

    deployment_mode: Literal["local", "cloud"] = "local"

    dashboard_url: str = "http://localhost:7131"
    api_url: str = "http://localhost:7130/api"

    log_level: str = "info"


SETTINGS = BackendSettings()
