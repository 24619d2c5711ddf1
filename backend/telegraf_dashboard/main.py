"""
Telegraf Dashboard 后端应用入口模块 (Backend Application Entry Module)

负责 FastAPI 应用的生命周期管理：异常处理器注册、CORS 中间件、路由注册、
健康检查，以及关闭时释放 Redis 连接和遥测库连接池。

Manages the FastAPI application lifecycle: exception handlers, CORS
middleware, router registration, health checks, and releasing the Redis
client and the telemetry store pool on shutdown.
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from telegraf_dashboard import __version__
from telegraf_dashboard.core.cache import close_stats_cache
from telegraf_dashboard.core.config import settings
from telegraf_dashboard.core.database import TelemetryStore, get_store, store
from telegraf_dashboard.core.exceptions import StoreUnavailableError, register_exception_handlers
from telegraf_dashboard.routers import history, stats

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理器 (Application Lifecycle Manager)

    遥测表由外部采集器维护，启动时不建表；连接在首次查询时按需建立。
    """
    logger.info(
        "Telegraf Dashboard %s starting (cache=%s, strategy=%s)",
        __version__,
        settings.stats_cache_backend,
        settings.stats_query_strategy,
    )

    yield

    # 关闭阶段：释放连接池和资源 (Shutdown Phase: release pools and resources)
    await close_stats_cache()
    await store.close()
    logger.info("Telegraf Dashboard stopped")


# 创建 FastAPI 应用实例 (Create FastAPI application instance)
app = FastAPI(
    title="Telegraf Dashboard",
    description="Paginated host overview and history charts over Telegraf telemetry",
    version=__version__,
    lifespan=lifespan,
)

# 注册全局异常处理器 (Register global exception handlers)
register_exception_handlers(app)

# 配置 CORS 中间件：开发环境放开，生产环境仅允许前端地址
# (CORS: open in development, frontend origin only in production)
is_production = settings.environment.lower() == "production"
allowed_origins = [settings.frontend_url] if is_production else ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=False,
    allow_methods=["GET", "OPTIONS"],  # 只读接口 (Read-only API)
    allow_headers=["*"],
)

app.include_router(stats.router)  # 主机概览 (Host overview)
app.include_router(history.router)  # 历史曲线 (History charts)


@app.get("/health")
async def health(telemetry: TelemetryStore = Depends(get_store)):
    """
    健康检查接口 (Health Check Endpoint)

    检查遥测库连通性并附带连接池占用，用于负载均衡器探活和故障排查。
    任一组件异常时 status 为 degraded，HTTP 状态码仍为 200。

    Returns:
        dict: {status, checks, pool, timestamp}
    """
    checks = {"api": "ok"}

    # 遥测库连通性检查 (Telemetry store connectivity check)
    try:
        await telemetry.ping()
        checks["database"] = "ok"
    except StoreUnavailableError:
        checks["database"] = "error"

    status = "ok" if all(v == "ok" for v in checks.values()) else "degraded"

    return {
        "status": status,
        "checks": checks,
        "pool": telemetry.pool_status().to_dict(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
