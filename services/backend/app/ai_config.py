from __future__ import annotations

from datetime import UTC, datetime
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from services.backend.app.schemas import AIModelConfig, Modality

_MODALITIES = ("text", "image")


class AIConfigError(RuntimeError):
    pass


class AIConfigService:
    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]):
        self._sessionmaker = sessionmaker

    async def find_all(self) -> list[AIModelConfig]:
        q = sa.text(
            "SELECT id, modality, provider, model_id, system_prompt, created_at "
            "FROM _ai_configs ORDER BY created_at ASC"
        )
        async with self._sessionmaker() as session:
            rows = (await session.execute(q)).mappings().all()
        return [AIModelConfig.model_validate(dict(r)) for r in rows]

    async def create(
        self,
        modality: Modality,
        provider: str,
        model_id: str,
        system_prompt: str | None = None,
    ) -> UUID:
        if modality not in _MODALITIES:
            raise AIConfigError(f"unsupported modality {modality!r}")
        if not provider or not model_id:
            raise AIConfigError("provider and model_id are required")

        config_id = uuid4()
        ts = datetime.now(tz=UTC)
        q = sa.text(
            "INSERT INTO _ai_configs(id, modality, provider, model_id, system_prompt, created_at, updated_at) "
            "VALUES (:id, :m, :p, :model, :prompt, :ts, :ts)"
        )
        async with self._sessionmaker() as session:
            await session.execute(
                q,
                {
                    "id": config_id,
                    "m": modality,
                    "p": provider,
                    "model": model_id,
                    "prompt": system_prompt,
                    "ts": ts,
                },
            )
            await session.commit()
        return config_id
