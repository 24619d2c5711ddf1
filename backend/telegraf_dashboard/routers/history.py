"""
主机历史曲线路由模块 (Host History Router)

选中某台主机后前端调用，返回最近 20 个 CPU 或内存采样用于绘图。
API端点：GET /api/history?host=&type=cpu|memory
"""
from fastapi import APIRouter, Depends, Query

from telegraf_dashboard.core.config import settings
from telegraf_dashboard.core.database import TelemetryStore, get_store
from telegraf_dashboard.schemas.stats import ErrorResponse, HistoryPoint
from telegraf_dashboard.services.history import load_history

router = APIRouter(prefix="/api", tags=["history"])


@router.get(
    "/history",
    response_model=list[HistoryPoint],
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def get_history(
    host: str | None = None,
    metric_type: str = Query("cpu", alias="type"),
    store: TelemetryStore = Depends(get_store),
):
    """缺少 host 返回 400 且不访问数据库；未知主机返回空列表。"""
    return await load_history(store, host, metric_type, points=settings.history_points)
