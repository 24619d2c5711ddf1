"""遥测库访问器与配置测试：字典行、错误转换、连接池参数、连接串改写、健康检查。"""
import pytest
from httpx import AsyncClient
from sqlalchemy import select

from telegraf_dashboard.core.config import Settings
from telegraf_dashboard.core.database import PoolDiagnostics, TelemetryStore, build_engine
from telegraf_dashboard.core.exceptions import StoreUnavailableError
from telegraf_dashboard.models.telemetry import ClientNetwork


class TestTelemetryStore:
    async def test_query_returns_dicts(self, store: TelemetryStore, seed, now):
        await seed("a", now, ip="192.168.1.2")
        rows = await store.query(select(ClientNetwork.host, ClientNetwork.ip_address))
        assert rows == [{"host": "a", "ip_address": "192.168.1.2"}]

    async def test_text_query_with_params(self, store: TelemetryStore):
        rows = await store.query("SELECT :n AS n", {"n": 7})
        assert rows == [{"n": 7}]

    async def test_error_becomes_store_unavailable(self, store: TelemetryStore):
        with pytest.raises(StoreUnavailableError) as exc_info:
            await store.query("SELECT * FROM no_such_table")
        assert "no_such_table" in exc_info.value.message

    async def test_out_of_range_parameter_becomes_store_unavailable(self, store: TelemetryStore):
        with pytest.raises(StoreUnavailableError):
            await store.query("SELECT :n AS n", {"n": 10**20})

    async def test_pool_status_idle_after_query(self, store: TelemetryStore):
        await store.ping()
        assert store.pool_status() == PoolDiagnostics(0, 0, 0)


class TestEngineConfig:
    def test_postgres_pool_bounds(self):
        config = Settings(database_url="postgresql://u:p@db:5432/telegraf", db_pool_max=10, db_pool_acquire_timeout=5)
        engine = build_engine(config)
        assert engine.dialect.name == "postgresql"
        assert engine.dialect.driver == "asyncpg"
        assert engine.pool.size() == 10
        assert engine.pool.timeout() == 5

    def test_empty_pool_status(self):
        engine = build_engine(Settings(database_url="postgresql://u:p@db:5432/telegraf"))
        status = TelemetryStore(engine).pool_status()
        assert status.to_dict() == {"totalConnections": 0, "idleConnections": 0, "waitingRequests": 0}

    @pytest.mark.parametrize("url,expected", [
        ("postgres://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
        ("postgresql://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
        ("postgresql+asyncpg://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
        ("sqlite+aiosqlite:///:memory:", "sqlite+aiosqlite:///:memory:"),
    ])
    def test_async_database_url(self, url, expected):
        assert Settings(database_url=url).async_database_url == expected


class TestHealth:
    async def test_health_ok(self, client: AsyncClient):
        resp = await client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["checks"] == {"api": "ok", "database": "ok"}
        assert body["pool"]["waitingRequests"] == 0

    async def test_health_degraded(self, failing_client: AsyncClient):
        body = (await failing_client.get("/health")).json()
        assert body["status"] == "degraded"
        assert body["checks"]["database"] == "error"
