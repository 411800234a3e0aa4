from __future__ import annotations

from collections.abc import AsyncIterator

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from services.backend.app.settings import SETTINGS


def create_engine(database_url: str = SETTINGS.database_url) -> AsyncEngine:
    # NullPool avoids cross-event-loop pooled connections during tests and keeps behavior simple.
    return create_async_engine(database_url, pool_pre_ping=True, poolclass=NullPool)


ENGINE = create_engine()
SESSIONMAKER = async_sessionmaker(ENGINE, expire_on_commit=False, class_=AsyncSession)


async def get_session() -> AsyncIterator[AsyncSession]:
    async with SESSIONMAKER() as session:
        yield session


# System tables are prefixed with "_" and never count as user tables.
_USER_TABLE_COUNT_SQL = sa.text(
    "SELECT COUNT(1) FROM information_schema.tables "
    "WHERE table_schema = 'public' AND table_type = 'BASE TABLE' "
    "AND table_name NOT LIKE '\\_%' AND table_name <> 'alembic_version'"
)


class DatabaseManager:
    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]):
        self._sessionmaker = sessionmaker

    async def get_user_table_count(self) -> int:
        async with self._sessionmaker() as session:
            return int((await session.execute(_USER_TABLE_COUNT_SQL)).scalar_one())
