"""
数据模型包 (Data Models Package)

导出 Telegraf 遥测表的只读 ORM 映射：网络标识、CPU、内存、系统负载。

Exports the read-only ORM mappings of the Telegraf telemetry tables: network
identity, CPU, memory and system load.
"""
from telegraf_dashboard.models.telemetry import ClientNetwork, CpuSample, MemorySample, SystemSample

__all__ = ["ClientNetwork", "CpuSample", "MemorySample", "SystemSample"]
