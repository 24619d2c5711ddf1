"""
概览与历史接口的响应模型

字段以 camelCase 输出，与仪表盘前端约定一致。某个指标族缺少采样时，
主机上对应的派生字段不出现在响应中（按 exclude_unset 序列化）。
"""
from datetime import datetime

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = {"alias_generator": to_camel, "populate_by_name": True}


class CpuBreakdown(CamelModel):
    """CPU 占用拆分（整数百分比）。"""
    user: int
    system: int
    iowait: int


class LoadAverage(CamelModel):
    """1/5/15 分钟负载，保留两位小数的字符串。"""
    l1: str
    l5: str
    l15: str


class HostSummary(CamelModel):
    """单台主机的合并视图：网络标识 + 最新 CPU / 内存 / 系统采样。"""
    hostname: str
    ip: str | None = None
    mac: str | None = None
    status: str
    last_update: datetime
    cpu: int | None = None
    cpu_breakdown: CpuBreakdown | None = None
    ram: int | None = None
    ram_available_percent: int | None = None
    ram_total: int | None = None
    ram_used: int | None = None
    uptime: str | None = None
    load: LoadAverage | None = None


class SummaryAggregate(CamelModel):
    """全局汇总：主机总数、在线/离线数、新鲜主机的平均 CPU / 内存。"""
    total: int
    online: int
    offline: int
    avg_cpu: int
    avg_ram: int


class PaginationEnvelope(CamelModel):
    total_hosts: int
    total_pages: int
    current_page: int
    limit: int


class DbDiagnostics(CamelModel):
    """连接池诊断（仅供观察，不参与控制决策）。"""
    total_connections: int
    idle_connections: int
    waiting_requests: int


class StatsResponse(CamelModel):
    data: list[HostSummary]
    summary: SummaryAggregate
    pagination: PaginationEnvelope
    db_diagnostics: DbDiagnostics | None = None


class HistoryPoint(CamelModel):
    """历史曲线上的一个点：本地时区 HH:MM 与取整后的使用率。"""
    time: str
    usage: int


class ErrorResponse(CamelModel):
    error: str
    details: str | None = None
    code: str | None = None
