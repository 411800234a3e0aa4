from __future__ import annotations

import re

import httpx
import pytest


def test_generate_api_key_format() -> None:
    from services.backend.app.auth import generate_api_key

    key = generate_api_key()
    assert re.fullmatch(r"ik_[0-9a-f]{64}", key)
    assert generate_api_key() != key


@pytest.mark.asyncio
async def test_initialize_api_key_rejects_malformed_env_key(make_settings) -> None:
    from services.backend.app.auth import ApiKeyError, AuthService

    def _no_session():
        raise AssertionError("database must not be touched")

    service = AuthService(_no_session, settings=make_settings(access_api_key="not-a-key"))
    with pytest.raises(ApiKeyError, match="must start with 'ik_'"):
        await service.initialize_api_key()


@pytest.mark.asyncio
async def test_bootstrap_status_reports_outcome_without_api_key() -> None:
    from services.backend.app.bootstrap import StartupOutcome
    from services.backend.app.main import app
    from services.backend.app.schemas import StepError

    app.state.bootstrap = StartupOutcome(
        steps_completed=["admin_check", "api_key", "database_stats"],
        errors=[StepError(step="ai_config_seed", message="insert failed")],
        api_key="ik_secret",
        table_count=2,
    )
    try:
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            r = await client.get("/bootstrap/status")
    finally:
        del app.state.bootstrap

    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is False
    assert body["steps_completed"] == ["admin_check", "api_key", "database_stats"]
    assert body["errors"] == [{"step": "ai_config_seed", "message": "insert failed"}]
    assert body["table_count"] == 2
    assert "ik_secret" not in r.text


@pytest.mark.asyncio
async def test_bootstrap_status_before_startup_is_unavailable() -> None:
    from services.backend.app.main import app

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        r = await client.get("/bootstrap/status")

    assert r.status_code == 503


@pytest.mark.asyncio
async def test_metrics_endpoint_exposes_startup_metrics() -> None:
    from services.backend.app.main import app

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        r = await client.get("/metrics")

    assert r.status_code == 200
    assert "startup_duration_ms" in r.text


@pytest.mark.asyncio
async def test_request_metrics_are_recorded_per_route() -> None:
    from services.backend.app.main import app

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        await client.get("/bootstrap/status")
        r = await client.get("/metrics")

    assert "request_latency_ms" in r.text
    assert 'route="/bootstrap/status"' in r.text
    assert "request_success_total" in r.text


class _FakeEngine:
    def __init__(self) -> None:
        self.disposed = 0

    async def dispose(self) -> None:
        self.disposed += 1


@pytest.fixture()
def stubbed_app(monkeypatch: pytest.MonkeyPatch):
    import services.backend.app.main as main
    from tests.backend_stubs import InMemoryAIConfigStore, StubAuthService, StubDatabaseManager

    engine = _FakeEngine()
    monkeypatch.setattr(main, "configure_logging", lambda _level: None)
    monkeypatch.setattr(main, "ENGINE", engine)
    monkeypatch.setattr(main, "AuthService", lambda _sm: StubAuthService(api_key="ik_lifespan"))
    monkeypatch.setattr(main, "DatabaseManager", lambda _sm: StubDatabaseManager(table_count=1))
    monkeypatch.setattr(main, "AIConfigService", lambda _sm: InMemoryAIConfigStore())
    yield main.app, engine
    if hasattr(main.app.state, "bootstrap"):
        del main.app.state.bootstrap


@pytest.mark.asyncio
async def test_lifespan_runs_startup_sequence_and_keeps_outcome(stubbed_app) -> None:
    app, engine = stubbed_app

    async with app.router.lifespan_context(app):
        outcome = app.state.bootstrap
        assert outcome.ok
        assert outcome.steps_completed == ["admin_check", "api_key", "database_stats", "ai_config_seed", "summary"]
        assert outcome.api_key == "ik_lifespan"
        assert outcome.table_count == 1
        assert engine.disposed == 0

    assert engine.disposed == 1


@pytest.mark.asyncio
async def test_lifespan_disposes_engine_when_app_fails(stubbed_app) -> None:
    app, engine = stubbed_app

    with pytest.raises(RuntimeError, match="serving failed"):
        async with app.router.lifespan_context(app):
            raise RuntimeError("serving failed")

    assert engine.disposed == 1


def test_cli_completes_when_a_step_fails(monkeypatch: pytest.MonkeyPatch) -> None:
    import services.backend.app.bootstrap as bootstrap
    from tests.backend_stubs import InMemoryAIConfigStore, StubAuthService, StubDatabaseManager

    auth = StubAuthService(error=RuntimeError("secrets backend unreachable"))
    database = StubDatabaseManager()
    engine = _FakeEngine()
    monkeypatch.setattr(bootstrap, "configure_logging", lambda _level: None)
    monkeypatch.setattr("services.backend.app.db.ENGINE", engine)
    monkeypatch.setattr("services.backend.app.auth.AuthService", lambda _sm: auth)
    monkeypatch.setattr("services.backend.app.db.DatabaseManager", lambda _sm: database)
    monkeypatch.setattr("services.backend.app.ai_config.AIConfigService", lambda _sm: InMemoryAIConfigStore())
    monkeypatch.setattr("sys.argv", ["backend-bootstrap", "--log-level", "debug"])

    assert bootstrap.main() is None

    assert auth.calls == 1
    assert database.calls == 0
    assert engine.disposed == 1


def test_startup_outcome_current_step_is_not_a_constructor_argument() -> None:
    from services.backend.app.bootstrap import StartupOutcome

    with pytest.raises(TypeError):
        StartupOutcome(_current_step="api_key")
    assert StartupOutcome()._current_step is None
