"""
主机概览聚合服务 (Host Overview Aggregation Service)

功能说明：为 /api/stats 生成分页主机概览
核心职责：
  - 全局汇总：主机总数、在线数（网络标识 5 分钟内有上报）、新鲜主机的平均 CPU / 内存
  - 按主机名升序分页，取每台主机最新的网络标识、CPU、内存、系统采样并按主机名合并
  - 派生字段：在线状态、格式化运行时间、取整百分比、两位小数负载
  - 首页 + 默认页大小的响应走 TTL 缓存
查询策略：
  - per_family：汇总 1 次 + 分页 1 次 + 三个指标族各 1 次，内存中合并（任意方言）
  - consolidated：一条 CTE + LEFT JOIN LATERAL 语句（仅 PostgreSQL）
两种策略输出完全一致；任一查询失败都会中止整个请求，不返回部分结果。

Builds the paginated host overview for /api/stats. Both query strategies
produce identical output; any store failure aborts the whole request.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import Float, Integer, bindparam, case, distinct, func, select, text

from telegraf_dashboard.core.cache import STATS_CACHE_KEY, ResponseCache
from telegraf_dashboard.core.database import TelemetryStore
from telegraf_dashboard.models.telemetry import ClientNetwork
from telegraf_dashboard.schemas.stats import (
    CpuBreakdown,
    HostSummary,
    LoadAverage,
    PaginationEnvelope,
    StatsResponse,
    SummaryAggregate,
)
from telegraf_dashboard.services.latest_sample import (
    CPU,
    MEMORY,
    NETWORK,
    SYSTEM,
    MetricFamily,
    as_utc,
    freshness_cutoff,
    latest_samples_statement,
    resolve_latest,
)

logger = logging.getLogger(__name__)

DEFAULT_ONLINE_WINDOW = 300  # 秒 (seconds)

# LIMIT / OFFSET 绑定为 BIGINT，超出即视为越过最后一页
MAX_ROW_OFFSET = 2**63 - 1


# ============================================================
# 派生字段 (Derived Fields)
# ============================================================

def round_half_up(value: float) -> int:
    """四舍五入到整数，.5 一律向正无穷方向（与前端 Math.round 一致）。"""
    return math.floor(value + 0.5)


def to_number(value: Any, default: Optional[float] = 0.0) -> Optional[float]:
    """把库中取出的值转为 float；None、非数值、NaN/Inf 返回 default。"""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def to_int(value: Any) -> Optional[int]:
    number = to_number(value, None)
    return int(number) if number is not None else None


def format_uptime(seconds: Any) -> str:
    """运行秒数 → "Xd Yh"，天数与小时数均截断不进位。"""
    total = int(to_number(seconds))
    days = total // 86400
    hours = (total % 86400) // 3600
    return f"{days}d {hours}h"


def format_load(value: Any) -> str:
    return f"{to_number(value):.2f}"


def host_status(last_update: Optional[datetime], now: datetime, window: int = DEFAULT_ONLINE_WINDOW) -> str:
    """最近一次网络标识上报距今不足 window 秒为 online，否则 offline。"""
    if last_update is None:
        return "offline"
    return "online" if now - last_update < timedelta(seconds=window) else "offline"


def cpu_usage(sample: dict) -> int:
    """
    CPU 总占用：优先 100 - usage_idle，缺失时用预先求和的 usage_active。

    不做 [0, 100] 截断：usage_idle > 100 时会得到负数，原样返回。
    """
    idle = to_number(sample.get("usage_idle"), None)
    if idle is not None:
        return round_half_up(100 - idle)
    return round_half_up(to_number(sample.get("usage_active")))


@dataclass
class HostSamples:
    """一台主机在各指标族上的最新采样；某族无采样时为 None。"""
    network: dict
    cpu: Optional[dict] = None
    memory: Optional[dict] = None
    system: Optional[dict] = None


def build_host_summary(samples: HostSamples, now: datetime, window: int = DEFAULT_ONLINE_WINDOW) -> HostSummary:
    """合并各族采样为主机视图；缺失的指标族不设置对应字段。"""
    network = samples.network
    last_update = as_utc(network["time"])
    fields: dict[str, Any] = {
        "hostname": network["host"],
        "ip": network.get("ip_address"),
        "mac": network.get("mac_address"),
        "status": host_status(last_update, now, window),
        "last_update": last_update,
    }

    if samples.cpu is not None:
        cpu = samples.cpu
        fields["cpu"] = cpu_usage(cpu)
        fields["cpu_breakdown"] = CpuBreakdown(
            user=round_half_up(to_number(cpu.get("usage_user"))),
            system=round_half_up(to_number(cpu.get("usage_system"))),
            iowait=round_half_up(to_number(cpu.get("usage_iowait"))),
        )

    if samples.memory is not None:
        mem = samples.memory
        fields["ram"] = round_half_up(to_number(mem.get("used_percent")))
        fields["ram_available_percent"] = round_half_up(to_number(mem.get("available_percent"), 100.0))
        fields["ram_total"] = to_int(mem.get("total"))
        fields["ram_used"] = to_int(mem.get("used"))

    if samples.system is not None:
        system = samples.system
        fields["uptime"] = format_uptime(system.get("uptime"))
        fields["load"] = LoadAverage(
            l1=format_load(system.get("load1")),
            l5=format_load(system.get("load5")),
            l15=format_load(system.get("load15")),
        )

    return HostSummary(**fields)


def build_summary(row: dict) -> SummaryAggregate:
    total = int(to_number(row.get("total")))
    online = int(to_number(row.get("online")))
    return SummaryAggregate(
        total=total,
        online=online,
        offline=total - online,
        avg_cpu=round_half_up(to_number(row.get("avg_cpu"))),
        avg_ram=round_half_up(to_number(row.get("avg_ram"))),
    )


# ============================================================
# 合并查询（PostgreSQL） (Consolidated Query, PostgreSQL)
# ============================================================

_FAMILY_PREFIXES = (
    (CPU, "cpu"),
    (MEMORY, "memory"),
    (SYSTEM, "system"),
)

CONSOLIDATED_STATS_SQL = text("""
    WITH summary_data AS (
        SELECT
            count(DISTINCT host) AS total,
            count(DISTINCT host) FILTER (WHERE time > now() - make_interval(secs => :window)) AS online
        FROM client_network
    ),
    fresh_cpu AS (
        SELECT DISTINCT ON (host) host, usage_idle
        FROM cpu
        WHERE cpu = 'cpu-total' AND time > now() - make_interval(secs => :window)
        ORDER BY host, time DESC
    ),
    fresh_mem AS (
        SELECT DISTINCT ON (host) host, used_percent
        FROM mem
        WHERE time > now() - make_interval(secs => :window)
        ORDER BY host, time DESC
    ),
    paged_hosts AS (
        SELECT DISTINCT ON (host)
            host, time, "IP_Address" AS ip_address, "MacAddress" AS mac_address
        FROM client_network
        ORDER BY host, time DESC
        LIMIT :limit OFFSET :offset
    )
    SELECT
        h.host, h.time, h.ip_address, h.mac_address,
        c.time AS cpu_time, c.usage_user, c.usage_system, c.usage_iowait, c.usage_idle, c.usage_active,
        m.time AS memory_time, m.used_percent, m.available_percent, m.total, m.used,
        s.time AS system_time, s.uptime, s.load1, s.load5, s.load15,
        sd.total AS global_total,
        sd.online AS global_online,
        (SELECT avg(100 - usage_idle) FROM fresh_cpu) AS global_avg_cpu,
        (SELECT avg(used_percent) FROM fresh_mem) AS global_avg_ram
    FROM paged_hosts h
    CROSS JOIN summary_data sd
    LEFT JOIN LATERAL (
        SELECT time, usage_user, usage_system, usage_iowait, usage_idle, usage_active
        FROM cpu
        WHERE host = h.host AND cpu = 'cpu-total'
        ORDER BY time DESC LIMIT 1
    ) c ON true
    LEFT JOIN LATERAL (
        SELECT time, used_percent, available_percent, total, used
        FROM mem
        WHERE host = h.host
        ORDER BY time DESC LIMIT 1
    ) m ON true
    LEFT JOIN LATERAL (
        SELECT time, uptime, load1, load5, load15
        FROM system
        WHERE host = h.host
        ORDER BY time DESC LIMIT 1
    ) s ON true
    ORDER BY h.host
""").bindparams(
    bindparam("window", type_=Float),
    bindparam("limit", type_=Integer),
    bindparam("offset", type_=Integer),
)


def _family_sample(row: dict, family: MetricFamily, prefix: str) -> Optional[dict]:
    marker = row.get(f"{prefix}_time")
    if marker is None:
        return None
    sample = {"host": row["host"], "time": as_utc(marker)}
    sample.update({name: row.get(name) for name in family.columns})
    return sample


def split_consolidated_row(row: dict) -> HostSamples:
    """把合并查询的一行拆回各指标族；LATERAL 未命中时 *_time 为 NULL。"""
    network = {"host": row["host"], "time": as_utc(row["time"])}
    network.update({name: row.get(name) for name in NETWORK.columns})
    samples = HostSamples(network=network)
    for family, prefix in _FAMILY_PREFIXES:
        setattr(samples, prefix, _family_sample(row, family, prefix))
    return samples


# ============================================================
# 聚合器 (Aggregator)
# ============================================================

class StatsAggregator:
    """
    主机概览聚合器 (Host Overview Aggregator)

    Args:
        store: 遥测库访问器
        strategy: auto / consolidated / per_family；auto 在 PostgreSQL 上使用合并查询
        online_window: 在线判定与平均值计算的新鲜度窗口（秒）
        include_diagnostics: 是否在响应中附带连接池诊断
    """

    def __init__(
        self,
        store: TelemetryStore,
        strategy: str = "auto",
        online_window: int = DEFAULT_ONLINE_WINDOW,
        include_diagnostics: bool = True,
    ):
        self.store = store
        self.strategy = strategy
        self.online_window = online_window
        self.include_diagnostics = include_diagnostics

    @property
    def uses_consolidated_query(self) -> bool:
        if self.strategy == "consolidated":
            return True
        if self.strategy == "per_family":
            return False
        return self.store.dialect_name == "postgresql"

    def summary_statement(self, since):
        """总数 / 在线数 / 新鲜主机平均 CPU 与内存，一次查询取回。"""
        dialect = self.store.dialect_name
        fresh_cpu = latest_samples_statement(CPU, since=since, dialect=dialect).subquery("fresh_cpu")
        fresh_mem = latest_samples_statement(MEMORY, since=since, dialect=dialect).subquery("fresh_mem")
        return select(
            func.count(distinct(ClientNetwork.host)).label("total"),
            func.count(distinct(case((ClientNetwork.time > since, ClientNetwork.host)))).label("online"),
            select(func.avg(100 - fresh_cpu.c.usage_idle)).scalar_subquery().label("avg_cpu"),
            select(func.avg(fresh_mem.c.used_percent)).scalar_subquery().label("avg_ram"),
        )

    async def fetch_summary(self, since) -> SummaryAggregate:
        rows = await self.store.query(self.summary_statement(since))
        return build_summary(rows[0] if rows else {})

    async def _fetch_per_family(self, limit: int, offset: int, since):
        summary = await self.fetch_summary(since)
        if offset >= summary.total:
            return summary, []

        # 按主机名升序分页，刷新之间顺序稳定 (Hostname order keeps pages stable across refreshes)
        page_rows = await resolve_latest(self.store, NETWORK, limit=limit, offset=offset)
        hosts = [row["host"] for row in page_rows]

        by_family = {}
        for family, prefix in _FAMILY_PREFIXES:
            rows = await resolve_latest(self.store, family, hosts=hosts)
            by_family[prefix] = {row["host"]: row for row in rows}

        merged = [
            HostSamples(
                network=row,
                cpu=by_family["cpu"].get(row["host"]),
                memory=by_family["memory"].get(row["host"]),
                system=by_family["system"].get(row["host"]),
            )
            for row in page_rows
        ]
        return summary, merged

    async def _fetch_consolidated(self, limit: int, offset: int, since):
        rows = await self.store.query(
            CONSOLIDATED_STATS_SQL,
            {"window": float(self.online_window), "limit": limit, "offset": offset},
        )
        if not rows:
            # 页码越界或库为空：单独取汇总 (Page out of range or empty store: fetch the summary alone)
            return await self.fetch_summary(since), []

        first = rows[0]
        summary = build_summary({
            "total": first.get("global_total"),
            "online": first.get("global_online"),
            "avg_cpu": first.get("global_avg_cpu"),
            "avg_ram": first.get("global_avg_ram"),
        })
        return summary, [split_consolidated_row(row) for row in rows]

    def diagnostics(self) -> Optional[dict]:
        """当前连接池占用；关闭诊断时返回 None (Live pool occupancy, None when disabled)"""
        if not self.include_diagnostics:
            return None
        return self.store.pool_status().to_dict()

    async def collect(self, page: int, limit: int, now: Optional[datetime] = None) -> dict:
        """
        生成一页主机概览 (Build one page of the host overview)

        Args:
            page: 页码，从 1 开始；越过最后一页时 data 为空
            limit: 每页主机数
            now: 判定在线状态的参考时间，默认当前 UTC 时间
        Returns:
            dict: {data, summary, pagination}，可直接 JSON 序列化；连接池诊断由 load_stats 附加
        Raises:
            StoreUnavailableError: 任一查询失败
        """
        now = now or datetime.now(timezone.utc)
        since = freshness_cutoff(self.online_window, self.store.dialect_name, now)
        offset = (page - 1) * limit
        row_limit = min(limit, MAX_ROW_OFFSET)

        if offset > MAX_ROW_OFFSET:
            summary, merged = await self.fetch_summary(since), []
        elif self.uses_consolidated_query:
            summary, merged = await self._fetch_consolidated(row_limit, offset, since)
        else:
            summary, merged = await self._fetch_per_family(row_limit, offset, since)

        response = StatsResponse(
            data=[build_host_summary(samples, now, self.online_window) for samples in merged],
            summary=summary,
            pagination=PaginationEnvelope(
                total_hosts=summary.total,
                total_pages=math.ceil(summary.total / limit),
                current_page=page,
                limit=limit,
            ),
        )
        return response.model_dump(mode="json", by_alias=True, exclude_unset=True)


async def load_stats(
    aggregator: StatsAggregator,
    cache: ResponseCache,
    page: int,
    limit: int,
    default_limit: int,
    ttl: int,
) -> dict:
    """
    带缓存的概览查询 (Cached Overview Query)

    只有 page=1 且 limit 为默认页大小的请求读写缓存；命中时不访问数据库。
    其他请求始终直接查询且不写缓存。并发未命中不合并，各自查询。
    缓存中不含连接池诊断，每次响应都附加当前值。
    """
    cacheable = page == 1 and limit == default_limit
    payload = None
    if cacheable:
        payload = await cache.get(STATS_CACHE_KEY)
        if payload is not None:
            logger.debug("Stats served from cache")

    if payload is None:
        payload = await aggregator.collect(page, limit)
        if cacheable:
            await cache.set(STATS_CACHE_KEY, payload, ttl)

    diagnostics = aggregator.diagnostics()
    if diagnostics is None:
        return payload
    return {**payload, "dbDiagnostics": diagnostics}
