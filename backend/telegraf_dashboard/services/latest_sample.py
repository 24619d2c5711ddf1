"""
最新采样解析 (Latest Sample Resolver)

对某个指标族（可选限定主机集合、时间下限），每台主机只返回一行：time 最大的那一行。
PostgreSQL 上使用 DISTINCT ON (host) ... ORDER BY host, time DESC；
其他方言改写为 row_number() OVER (PARTITION BY host ORDER BY time DESC) = 1。
两种写法语义一致：同一主机若有两行 time 相同，返回哪一行不确定，这是可接受的。

For one metric family (optionally restricted to a host set and a lower time
bound) returns one row per host: the row with the greatest time. PostgreSQL
uses DISTINCT ON (host) ... ORDER BY host, time DESC; other dialects get the
equivalent row_number() = 1 rewrite. When two rows of a host share a
timestamp either may be returned.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional

from sqlalchemy import Select, func, select

from telegraf_dashboard.core.database import TelemetryStore
from telegraf_dashboard.models.telemetry import ClientNetwork, CpuSample, MemorySample, SystemSample

CPU_TOTAL = "cpu-total"


@dataclass(frozen=True, eq=False)
class MetricFamily:
    """指标族描述：表模型、读取的列、固定过滤条件。"""
    name: str
    model: type
    columns: tuple[str, ...]
    where: tuple = field(default=())


NETWORK = MetricFamily("network", ClientNetwork, ("ip_address", "mac_address"))
CPU = MetricFamily(
    "cpu",
    CpuSample,
    ("usage_user", "usage_system", "usage_iowait", "usage_idle", "usage_active"),
    where=(CpuSample.cpu == CPU_TOTAL,),
)
MEMORY = MetricFamily("memory", MemorySample, ("used_percent", "available_percent", "total", "used"))
SYSTEM = MetricFamily("system", SystemSample, ("uptime", "load1", "load5", "load15"))


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """无时区的时间按 UTC 处理（SQLite 不保存时区）。"""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def freshness_cutoff(window_seconds: int, dialect: str, now: Optional[datetime] = None) -> Any:
    """
    新鲜度窗口下限 (Freshness Window Cutoff)

    PostgreSQL 上由库端计算 now() - interval，time 列无论带不带时区都能直接比较；
    其他方言（测试用 SQLite）绑定 UTC 时间。
    """
    window = timedelta(seconds=window_seconds)
    if dialect == "postgresql":
        return func.now() - window
    return (now or datetime.now(timezone.utc)) - window


def latest_samples_statement(
    family: MetricFamily,
    hosts: Optional[Iterable[str]] = None,
    since: Any = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    dialect: str = "postgresql",
) -> Select:
    """
    构建"每主机最新一行"查询 (Build the latest-row-per-host query)

    Args:
        family: 指标族
        hosts: 仅返回这些主机（None 表示不过滤）
        since: 仅考虑 time 晚于此下限的行（时间或 SQL 表达式，见 freshness_cutoff）
        limit / offset: 按主机名升序分页
        dialect: 方言名，决定 DISTINCT ON 或窗口函数写法
    Returns:
        列为 host, time 以及族内各列，按 host 升序
    """
    model = family.model
    columns = [model.host, model.time, *(getattr(model, name).label(name) for name in family.columns)]

    conditions = list(family.where)
    if hosts is not None:
        conditions.append(model.host.in_(list(hosts)))
    if since is not None:
        conditions.append(model.time > since)

    if dialect == "postgresql":
        stmt = (
            select(*columns)
            .where(*conditions)
            .distinct(model.host)
            .order_by(model.host, model.time.desc())
        )
    else:
        rank = func.row_number().over(partition_by=model.host, order_by=model.time.desc()).label("rn")
        ranked = select(*columns, rank).where(*conditions).subquery()
        stmt = (
            select(*(ranked.c[name] for name in ("host", "time", *family.columns)))
            .where(ranked.c.rn == 1)
            .order_by(ranked.c.host)
        )

    if limit is not None:
        stmt = stmt.limit(limit)
    if offset:
        stmt = stmt.offset(offset)
    return stmt


async def resolve_latest(
    store: TelemetryStore,
    family: MetricFamily,
    hosts: Optional[Iterable[str]] = None,
    since: Any = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> list[dict]:
    """执行最新采样查询；主机过滤集为空时直接返回空列表，不访问数据库。"""
    if hosts is not None:
        hosts = list(hosts)
        if not hosts:
            return []

    stmt = latest_samples_statement(family, hosts, since, limit, offset, dialect=store.dialect_name)
    rows = await store.query(stmt)
    for row in rows:
        row["time"] = as_utc(row["time"])
    return rows
