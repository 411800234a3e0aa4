from __future__ import annotations

import argparse
import asyncio
import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Protocol
from uuid import UUID

from opentelemetry import trace

from services.backend.app.environment import is_cloud_environment
from services.backend.app.logging import configure_logging, logger
from services.backend.app.observability import STARTUP_DURATION, STARTUP_STEP_TOTAL
from services.backend.app.schemas import AdminCredentials, AIModelConfig, Modality, StepError
from services.backend.app.settings import SETTINGS, BackendSettings

PLACEHOLDER_ADMIN_EMAIL = "admin@example.com"
PLACEHOLDER_ADMIN_PASSWORD = "change-this-password"


@dataclass(frozen=True)
class DefaultAIConfig:
    modality: Modality
    provider: str
    model_id: str
    system_prompt: str | None = None


# Created in this order on the first cloud boot against an empty store.
DEFAULT_AI_CONFIGS: tuple[DefaultAIConfig, ...] = (
    DefaultAIConfig(
        modality="text",
        provider="openrouter",
        model_id="anthropic/claude-3.5-haiku",
        system_prompt="You are a helpful assistant.",
    ),
    DefaultAIConfig(
        modality="image",
        provider="openrouter",
        model_id="google/gemini-2.5-flash-image-preview",
    ),
)


class ApiKeyIssuer(Protocol):
    async def initialize_api_key(self) -> str: ...


class TableStats(Protocol):
    async def get_user_table_count(self) -> int: ...


class AIConfigStore(Protocol):
    async def find_all(self) -> Sequence[AIModelConfig]: ...

    async def create(
        self,
        modality: Modality,
        provider: str,
        model_id: str,
        system_prompt: str | None = None,
    ) -> UUID: ...


@dataclass
class StartupOutcome:
    steps_completed: list[str] = field(default_factory=list)
    errors: list[StepError] = field(default_factory=list)
    api_key: str | None = field(default=None, repr=False)
    table_count: int | None = None
    seeded_ai_configs: bool = False
    insecure_defaults_used: bool = False
    _current_step: str | None = field(default=None, init=False, repr=False)

    @property
    def ok(self) -> bool:
        return not self.errors


def resolve_admin_credentials(settings: BackendSettings = SETTINGS) -> tuple[AdminCredentials, bool]:
    """
    Returns the admin credentials and whether placeholder values were substituted.

    Placeholders are only used when `allow_insecure_defaults` is set; otherwise
    unset values stay empty and the presence check reports them.
    """
    email = settings.admin_email or ""
    password = settings.admin_password or ""
    if not settings.allow_insecure_defaults:
        return AdminCredentials(email=email, password=password), False

    defaulted = []
    if not email:
        email = PLACEHOLDER_ADMIN_EMAIL
        defaulted.append("ADMIN_EMAIL")
    if not password:
        password = PLACEHOLDER_ADMIN_PASSWORD
        defaulted.append("ADMIN_PASSWORD")
    if defaulted:
        logger.warning("admin_credentials_defaulted", variables=defaulted)
    return AdminCredentials(email=email, password=password), bool(defaulted)


def validate_admin_presence(email: str | None, password: str | None) -> bool:
    # Presence only: no format or strength checks, and never a startup gate.
    if email and password:
        logger.info("admin_configured", email=email)
        return True
    logger.warning("admin_credentials_missing", hint="check ADMIN_EMAIL and ADMIN_PASSWORD")
    return False


async def seed_default_ai_configs_if_needed(store: AIConfigStore, *, settings: BackendSettings = SETTINGS) -> bool:
    """
    Create the default AI model configs on the first cloud boot.

    Only runs when the deployment is cloud and the store is empty, so repeated
    boots never add records. Create errors propagate; a text config created
    before a failing image config is left in place.
    """
    if not is_cloud_environment(settings):
        return False

    existing = await store.find_all()
    if len(existing) > 0:
        return False

    for cfg in DEFAULT_AI_CONFIGS:
        await store.create(cfg.modality, cfg.provider, cfg.model_id, cfg.system_prompt)

    logger.info("default_ai_models_configured", environment="cloud", count=len(DEFAULT_AI_CONFIGS))
    return True


@contextmanager
def _step(outcome: StartupOutcome, name: str) -> Iterator[None]:
    outcome._current_step = name
    tracer = trace.get_tracer("backend.bootstrap")
    with tracer.start_as_current_span("startup_step") as span:
        span.set_attribute("startup.step", name)
        try:
            yield
        except Exception:
            STARTUP_STEP_TOTAL.labels(name, "error").inc()
            raise
    STARTUP_STEP_TOTAL.labels(name, "ok").inc()
    outcome.steps_completed.append(name)
    outcome._current_step = None


async def run_startup_sequence(
    *,
    auth: ApiKeyIssuer,
    database: TableStats,
    ai_configs: AIConfigStore,
    settings: BackendSettings = SETTINGS,
) -> StartupOutcome:
    """
    Run the first-run bootstrap: admin check, API key, database stats, AI config
    seeding, then the setup summary.

    Steps run strictly in order. The first failing step stops the sequence; its
    error is logged and recorded on the returned outcome instead of raised, so
    the host process keeps running.
    """
    outcome = StartupOutcome()
    start = time.perf_counter()

    try:
        logger.info("backend_starting")

        with _step(outcome, "admin_check"):
            creds, outcome.insecure_defaults_used = resolve_admin_credentials(settings)
            validate_admin_presence(creds.email, creds.password)

        with _step(outcome, "api_key"):
            outcome.api_key = await auth.initialize_api_key()

        with _step(outcome, "database_stats"):
            outcome.table_count = await database.get_user_table_count()
            logger.info(
                "database_connected",
                engine="postgresql",
                host=settings.postgres_host,
                port=settings.postgres_port,
                database=settings.postgres_db,
            )
            if outcome.table_count > 0:
                logger.info("user_tables_found", count=outcome.table_count)

        with _step(outcome, "ai_config_seed"):
            outcome.seeded_ai_configs = await seed_default_ai_configs_if_needed(ai_configs, settings=settings)

        with _step(outcome, "summary"):
            logger.info("api_key_ready", api_key=outcome.api_key)
            logger.info(
                "setup_complete",
                note="Save this API key for your apps!",
                dashboard=settings.dashboard_url,
                api=settings.api_url,
            )
    except Exception as e:  # noqa: BLE001
        message = str(e) or e.__class__.__name__
        step = outcome._current_step or "unknown"
        outcome.errors.append(StepError(step=step, message=message))
        logger.error("setup_failed", step=step, error=message)
    finally:
        STARTUP_DURATION.observe((time.perf_counter() - start) * 1000)

    return outcome


async def _run_once() -> StartupOutcome:
    from services.backend.app.ai_config import AIConfigService
    from services.backend.app.auth import AuthService
    from services.backend.app.db import ENGINE, SESSIONMAKER, DatabaseManager

    try:
        return await run_startup_sequence(
            auth=AuthService(SESSIONMAKER),
            database=DatabaseManager(SESSIONMAKER),
            ai_configs=AIConfigService(SESSIONMAKER),
        )
    finally:
        await ENGINE.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the backend startup sequence once.")
    parser.add_argument("--log-level", default=SETTINGS.log_level)
    args = parser.parse_args()
    configure_logging(args.log_level)
    asyncio.run(_run_once())


if __name__ == "__main__":
    main()
