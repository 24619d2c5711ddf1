"""
Telegraf Dashboard 后端 (Telegraf Dashboard Backend)

读取 Telegraf 采集写入 PostgreSQL 的主机遥测数据（网络、CPU、内存、系统负载），
为仪表盘提供分页主机概览和单主机历史曲线接口。

Reads host telemetry (network, CPU, memory, system load) written to PostgreSQL
by Telegraf collectors and serves a paginated host overview plus per-host
history charts to the dashboard.
"""

__version__ = "0.3.0"
