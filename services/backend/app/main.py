from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import sqlalchemy as sa
from fastapi import Depends, FastAPI, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from services.backend.app.ai_config import AIConfigService
from services.backend.app.auth import AuthService
from services.backend.app.bootstrap import StartupOutcome, run_startup_sequence
from services.backend.app.db import ENGINE, SESSIONMAKER, DatabaseManager, get_session
from services.backend.app.logging import configure_logging
from services.backend.app.observability import add_metrics_middleware, instrument_sqlalchemy, setup_tracing
from services.backend.app.schemas import BootstrapStatusResponse
from services.backend.app.settings import SETTINGS


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    configure_logging(SETTINGS.log_level)
    app.state.bootstrap = await run_startup_sequence(
        auth=AuthService(SESSIONMAKER),
        database=DatabaseManager(SESSIONMAKER),
        ai_configs=AIConfigService(SESSIONMAKER),
    )
    try:
        yield
    finally:
        await ENGINE.dispose()


app = FastAPI(title="Backend API", version="0.1.0", lifespan=lifespan)
setup_tracing(app, service_name="backend")
add_metrics_middleware(app, service_name="backend")
instrument_sqlalchemy(ENGINE)


@app.get("/healthz")
async def healthz(session: AsyncSession = Depends(get_session)) -> dict:
    await session.execute(sa.text("SELECT 1"))
    return {"ok": True}


@app.get("/bootstrap/status", response_model=BootstrapStatusResponse)
async def bootstrap_status(request: Request) -> BootstrapStatusResponse:
    outcome: StartupOutcome | None = getattr(request.app.state, "bootstrap", None)
    if outcome is None:
        raise HTTPException(status_code=503, detail="startup sequence has not run")
    # The API key is only ever written to the startup log.
    return BootstrapStatusResponse(
        ok=outcome.ok,
        steps_completed=outcome.steps_completed,
        errors=outcome.errors,
        table_count=outcome.table_count,
        seeded_ai_configs=outcome.seeded_ai_configs,
        insecure_defaults_used=outcome.insecure_defaults_used,
    )
