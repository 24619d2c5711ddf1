"""
遥测库连接模块 (Telemetry Store Connection Module)

基于 SQLAlchemy 2.0 异步模式创建 asyncpg 引擎，连接池上限、获取连接超时、
空闲连接回收都由配置决定。TelemetryStore 是只读查询入口，所有故障统一转换为
StoreUnavailableError，并对外提供连接池占用情况用于诊断。

Creates the asyncpg engine in SQLAlchemy 2.0 async mode; pool ceiling,
acquisition timeout and idle recycling come from configuration. TelemetryStore
is the read-only query entry point: every failure becomes a
StoreUnavailableError, and pool occupancy is exposed for diagnostics only.
"""
import asyncio
import logging
import ssl
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import QueuePool
from sqlalchemy.sql import Executable

from telegraf_dashboard.core.config import Settings, settings
from telegraf_dashboard.core.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """
    ORM 模型基类 (ORM Model Base Class)

    遥测表由外部采集器维护，这里的模型只是读取用的映射，生产环境从不建表或写入。

    The telemetry tables are owned by the external collector; models built on
    this base are read mappings only and are never created or written in
    production.
    """
    pass


@dataclass(frozen=True)
class PoolDiagnostics:
    """连接池占用快照 (Pool Occupancy Snapshot)"""
    total_connections: int
    idle_connections: int
    waiting_requests: int

    def to_dict(self) -> dict:
        return {
            "totalConnections": self.total_connections,
            "idleConnections": self.idle_connections,
            "waitingRequests": self.waiting_requests,
        }


def _ssl_option(config: Settings):
    """asyncpg 的 ssl 参数：关闭、默认校验，或关闭证书校验的上下文。"""
    if not config.database_ssl:
        return False
    if config.database_ssl_verify:
        return True
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


def build_engine(config: Settings = settings) -> AsyncEngine:
    """
    创建异步引擎 (Create Async Engine)

    PostgreSQL 使用有界连接池：pool_size=db_pool_max 且不允许溢出，
    pool_timeout 为获取连接超时，pool_recycle 回收空闲过久的连接，
    connect_args.timeout 限制建连时间。其他方言（测试用 SQLite）使用驱动默认值。
    """
    url = make_url(config.async_database_url)
    if url.get_backend_name() != "postgresql":
        return create_async_engine(url, echo=False)

    return create_async_engine(
        url,
        echo=False,
        pool_size=config.db_pool_max,
        max_overflow=0,
        pool_timeout=config.db_pool_acquire_timeout,
        pool_recycle=config.db_pool_idle_timeout,
        connect_args={
            "timeout": config.db_pool_acquire_timeout,
            "ssl": _ssl_option(config),
        },
    )


def _to_store_error(exc: BaseException) -> StoreUnavailableError:
    """提取驱动错误信息、SQLSTATE 与 detail (Extract driver message, SQLSTATE and detail)"""
    orig = getattr(exc, "orig", None)
    cause = getattr(orig, "__cause__", None)
    code = (
        getattr(orig, "sqlstate", None)
        or getattr(orig, "pgcode", None)
        or getattr(cause, "sqlstate", None)
    )
    detail = getattr(orig, "detail", None) or getattr(cause, "detail", None)
    message = str(orig) if orig is not None else (str(exc) or exc.__class__.__name__)
    logger.error("Telemetry store error: %s (code=%s, detail=%s)", message, code, detail)
    return StoreUnavailableError(message, code=code, store_detail=detail)


class TelemetryStore:
    """
    遥测库访问器 (Telemetry Store Accessor)

    每次 query 从连接池借出一个连接，执行参数化只读语句后立即归还。
    获取连接超时或查询失败时抛出 StoreUnavailableError，不重试。

    Each query borrows one pooled connection, runs a parameterised read and
    returns it. Acquisition timeouts and query failures raise
    StoreUnavailableError and are never retried.
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._active = 0
        self._waiting = 0

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    async def _acquire(self) -> AsyncConnection:
        self._waiting += 1
        try:
            conn = self.engine.connect()
            await conn.start()
            return conn
        finally:
            self._waiting -= 1

    async def query(self, statement: Executable | str, params: Optional[Mapping[str, Any]] = None) -> list[dict]:
        """执行只读查询，返回字典行列表 (Run a read query, return rows as dicts)"""
        if isinstance(statement, str):
            statement = text(statement)

        try:
            conn = await self._acquire()
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as exc:
            raise _to_store_error(exc) from exc

        self._active += 1
        try:
            result = await conn.execute(statement, dict(params or {}))
            return [dict(row) for row in result.mappings().all()]
        except (SQLAlchemyError, OSError, OverflowError, asyncio.TimeoutError) as exc:
            raise _to_store_error(exc) from exc
        finally:
            self._active -= 1
            await conn.close()

    async def ping(self) -> None:
        await self.query("SELECT 1")

    def pool_status(self) -> PoolDiagnostics:
        """
        连接池占用 (Pool Occupancy)

        QueuePool 直接读取借出/空闲数；其他连接池（如测试用 StaticPool）
        只能报告本访问器正在使用的连接数。
        """
        pool = self.engine.pool
        if isinstance(pool, QueuePool):
            idle = pool.checkedin()
            total = idle + pool.checkedout()
        else:
            idle = 0
            total = self._active
        return PoolDiagnostics(
            total_connections=total,
            idle_connections=idle,
            waiting_requests=self._waiting,
        )

    async def close(self) -> None:
        await self.engine.dispose()


# 全局引擎与访问器（导入时创建，首次查询时才建连）
# (Process-wide engine and accessor; connections open lazily on first query)
engine = build_engine()
store = TelemetryStore(engine)


async def get_store() -> TelemetryStore:
    """FastAPI 依赖项：获取遥测库访问器 (FastAPI Dependency: Get Telemetry Store)"""
    return store
