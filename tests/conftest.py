from __future__ import annotations

import os
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from testcontainers.postgres import PostgresContainer


REPO_ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture(scope="session")
def postgres_url() -> str:
    container = PostgresContainer("postgres:16")
    try:
        container.start()
    except Exception as e:  # noqa: BLE001
        pytest.skip(f"docker is not available for integration tests: {e}")
    try:
        yield container.get_connection_url()
    finally:
        container.stop()


@pytest.fixture(scope="session")
def migrated_db(postgres_url: str) -> str:
    # Normalize testcontainers URL (may be postgresql:// or postgresql+psycopg2://).
    base = postgres_url.replace("postgresql+psycopg2://", "postgresql://")
    # Alembic expects sync URL (psycopg3).
    sync_url = base.replace("postgresql://", "postgresql+psycopg://")
    async_url = base.replace("postgresql://", "postgresql+asyncpg://")

    alembic_ini = str(REPO_ROOT / "db" / "migrations" / "alembic.ini")
    cfg = Config(alembic_ini)
    os.environ["DATABASE_URL"] = sync_url
    command.upgrade(cfg, "head")

    # Restore async url for app runtime
    os.environ["DATABASE_URL"] = async_url
    return async_url
