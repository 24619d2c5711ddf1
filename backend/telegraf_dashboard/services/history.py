"""
主机历史曲线服务 (Host History Service)

取某台主机某项指标最近 N 个采样（按时间倒序取，再反转为正序用于绘图）。
时间格式化为服务端本地时区的 HH:MM，仅用于展示；使用率四舍五入为整数。
"""
import enum
from datetime import datetime

from sqlalchemy import select

from telegraf_dashboard.core.database import TelemetryStore
from telegraf_dashboard.core.exceptions import InvalidParameterError, MissingParameterError
from telegraf_dashboard.models.telemetry import CpuSample, MemorySample
from telegraf_dashboard.services.latest_sample import CPU_TOTAL, as_utc
from telegraf_dashboard.services.stats_aggregator import round_half_up, to_number

DEFAULT_HISTORY_POINTS = 20


class HistoryMetric(str, enum.Enum):
    CPU = "cpu"
    MEMORY = "memory"

    @classmethod
    def parse(cls, value: str | None) -> "HistoryMetric":
        if not value:
            return cls.CPU
        try:
            return cls(value)
        except ValueError:
            raise InvalidParameterError(f"Unsupported type: {value}", detail="type must be cpu or memory") from None


def history_statement(host: str, metric: HistoryMetric, points: int = DEFAULT_HISTORY_POINTS):
    if metric is HistoryMetric.CPU:
        return (
            select(CpuSample.time, CpuSample.usage_active.label("usage"))
            .where(CpuSample.host == host, CpuSample.cpu == CPU_TOTAL)
            .order_by(CpuSample.time.desc())
            .limit(points)
        )
    return (
        select(MemorySample.time, MemorySample.used_percent.label("usage"))
        .where(MemorySample.host == host)
        .order_by(MemorySample.time.desc())
        .limit(points)
    )


def format_clock(value: datetime) -> str:
    """转换到本地时区后格式化为 HH:MM。"""
    return as_utc(value).astimezone().strftime("%H:%M")


async def load_history(
    store: TelemetryStore,
    host: str | None,
    metric: HistoryMetric | str | None = HistoryMetric.CPU,
    points: int = DEFAULT_HISTORY_POINTS,
) -> list[dict]:
    """
    查询历史曲线 (Query History Series)

    Args:
        store: 遥测库访问器
        host: 主机名，必填；缺失时不访问数据库直接报错
        metric: cpu（usage_active，cpu-total 行）或 memory（used_percent），缺省为 cpu
        points: 最多返回的点数
    Returns:
        list[dict]: [{time: "HH:MM", usage: int}, ...]，时间正序；未知主机返回空列表
    Raises:
        MissingParameterError: host 缺失
        InvalidParameterError: metric 不是 cpu / memory
        StoreUnavailableError: 查询失败
    """
    if not host:
        raise MissingParameterError("Host required")
    metric = HistoryMetric.parse(metric)

    rows = await store.query(history_statement(host, metric, points))
    rows.reverse()
    return [
        {"time": format_clock(row["time"]), "usage": round_half_up(to_number(row["usage"]))}
        for row in rows
    ]
