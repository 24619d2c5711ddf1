"""
主机概览路由模块 (Host Overview Router)

功能说明：为仪表盘提供分页主机概览，前端按固定间隔轮询以及翻页时调用
核心职责：
  - 校验分页参数（page ≥ 1，limit ≥ 1）
  - 首页默认页大小命中 TTL 缓存时直接返回缓存
  - 查询失败时返回 500 {error, details, code}，不返回部分结果
API端点：GET /api/stats
"""
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from telegraf_dashboard.core.cache import ResponseCache, get_stats_cache
from telegraf_dashboard.core.config import settings
from telegraf_dashboard.core.database import TelemetryStore, get_store
from telegraf_dashboard.core.exceptions import StatsUnavailableError, StoreUnavailableError
from telegraf_dashboard.schemas.stats import ErrorResponse, StatsResponse
from telegraf_dashboard.services.stats_aggregator import StatsAggregator, load_stats

router = APIRouter(prefix="/api", tags=["stats"])

def get_stats_aggregator(store: TelemetryStore = Depends(get_store)) -> StatsAggregator:
    """按当前配置组装聚合器 (Build the aggregator from settings)"""
    return StatsAggregator(
        store,
        strategy=settings.stats_query_strategy,
        online_window=settings.online_window_seconds,
        include_diagnostics=settings.stats_include_diagnostics,
    )


@router.get(
    "/stats",
    responses={200: {"model": StatsResponse}, 400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def get_stats(
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    aggregator: StatsAggregator = Depends(get_stats_aggregator),
    cache: ResponseCache = Depends(get_stats_cache),
):
    """
    主机概览查询接口 (Host Overview Query)

    Args:
        page: 页码，从1开始
        limit: 每页主机数，缺省为配置的默认页大小
    Returns:
        JSONResponse: {data, summary, pagination, dbDiagnostics?}
    Raises:
        StatsUnavailableError: 遥测库不可用或查询失败（500）
    """
    limit = limit or settings.stats_default_page_size
    try:
        payload = await load_stats(
            aggregator,
            cache,
            page=page,
            limit=limit,
            default_limit=settings.stats_default_page_size,
            ttl=settings.stats_cache_ttl,
        )
    except StoreUnavailableError as exc:
        raise StatsUnavailableError(exc) from exc
    return JSONResponse(content=payload)
