from __future__ import annotations

import secrets
from datetime import UTC, datetime

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from services.backend.app.logging import logger
from services.backend.app.settings import SETTINGS, BackendSettings

API_KEY_PREFIX = "ik_"


class ApiKeyError(RuntimeError):
    pass


def generate_api_key() -> str:
    return f"{API_KEY_PREFIX}{secrets.token_hex(32)}"


class AuthService:
    """
    Issues the project API key.

    Resolution order: ACCESS_API_KEY from the environment, then the key already
    stored in `_api_keys`, then a freshly generated one which is stored.
    """

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession], settings: BackendSettings = SETTINGS):
        self._sessionmaker = sessionmaker
        self._settings = settings

    async def _stored_key(self, session: AsyncSession) -> str | None:
        q = sa.text("SELECT api_key FROM _api_keys ORDER BY created_at ASC LIMIT 1")
        return (await session.execute(q)).scalar_one_or_none()

    async def _store_key(self, session: AsyncSession, api_key: str) -> None:
        q = sa.text(
            "INSERT INTO _api_keys(api_key, created_at) VALUES (:k, :ts) ON CONFLICT (api_key) DO NOTHING"
        )
        await session.execute(q, {"k": api_key, "ts": datetime.now(tz=UTC)})
        await session.commit()

    async def initialize_api_key(self) -> str:
        configured = (self._settings.access_api_key or "").strip()
        if configured and not configured.startswith(API_KEY_PREFIX):
            raise ApiKeyError(f"ACCESS_API_KEY must start with '{API_KEY_PREFIX}'")

        async with self._sessionmaker() as session:
            if configured:
                await self._store_key(session, configured)
                logger.info("api_key_loaded", source="env")
                return configured

            existing = await self._stored_key(session)
            if existing:
                logger.info("api_key_loaded", source="database")
                return existing

            api_key = generate_api_key()
            await self._store_key(session, api_key)
            logger.info("api_key_loaded", source="generated")
            return api_key
