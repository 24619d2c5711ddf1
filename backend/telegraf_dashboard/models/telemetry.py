"""
遥测表模型 (Telemetry Table Models)

Telegraf PostgreSQL 输出插件写入的四张指标表的只读映射。每张表按 (host, time)
追加写入，同一主机多行；主机在某一指标族上的"当前状态"即该族中 time 最大的那一行。

Read-only mappings of the four metric tables written by the Telegraf PostgreSQL
output. Every table is append-only per (host, time) with many rows per host; a
host's "current state" in a family is its row with the greatest time.
"""
from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Float, Text
from sqlalchemy.orm import Mapped, mapped_column

from telegraf_dashboard.core.database import Base


class ClientNetwork(Base):
    """
    网络标识表 (Network Identity Table)

    主机 IP / MAC 地址，同时作为主机清单和在线判定的依据。
    """
    __tablename__ = "client_network"

    time: Mapped[datetime] = mapped_column(DateTime(timezone=True), primary_key=True)  # 采集时间 (Sample Time)
    host: Mapped[str] = mapped_column(Text, primary_key=True, index=True)  # 主机名 (Hostname)
    ip_address: Mapped[str | None] = mapped_column("IP_Address", Text, nullable=True)  # IP 地址 (IP Address)
    mac_address: Mapped[str | None] = mapped_column("MacAddress", Text, nullable=True)  # MAC 地址 (MAC Address)


class CpuSample(Base):
    """CPU 使用率表，每个核心一行，汇总行 cpu='cpu-total' (CPU Usage, one row per core plus cpu-total)"""
    __tablename__ = "cpu"

    time: Mapped[datetime] = mapped_column(DateTime(timezone=True), primary_key=True)
    host: Mapped[str] = mapped_column(Text, primary_key=True, index=True)
    cpu: Mapped[str] = mapped_column(Text, primary_key=True)  # 核心标识 (Core Label)
    usage_user: Mapped[float | None] = mapped_column(Float, nullable=True)
    usage_system: Mapped[float | None] = mapped_column(Float, nullable=True)
    usage_iowait: Mapped[float | None] = mapped_column(Float, nullable=True)
    usage_idle: Mapped[float | None] = mapped_column(Float, nullable=True)
    usage_active: Mapped[float | None] = mapped_column(Float, nullable=True)  # 预先求和的活跃占比 (Pre-summed Active %)


class MemorySample(Base):
    """内存使用表 (Memory Usage Table)"""
    __tablename__ = "mem"

    time: Mapped[datetime] = mapped_column(DateTime(timezone=True), primary_key=True)
    host: Mapped[str] = mapped_column(Text, primary_key=True, index=True)
    used_percent: Mapped[float | None] = mapped_column(Float, nullable=True)
    available_percent: Mapped[float | None] = mapped_column(Float, nullable=True)
    total: Mapped[int | None] = mapped_column(BigInteger, nullable=True)  # 总内存字节数 (Total Bytes)
    used: Mapped[int | None] = mapped_column(BigInteger, nullable=True)  # 已用字节数 (Used Bytes)


class SystemSample(Base):
    """系统运行时间与负载表 (Uptime and Load Average Table)"""
    __tablename__ = "system"

    time: Mapped[datetime] = mapped_column(DateTime(timezone=True), primary_key=True)
    host: Mapped[str] = mapped_column(Text, primary_key=True, index=True)
    uptime: Mapped[int | None] = mapped_column(BigInteger, nullable=True)  # 运行秒数 (Uptime Seconds)
    load1: Mapped[float | None] = mapped_column(Float, nullable=True)
    load5: Mapped[float | None] = mapped_column(Float, nullable=True)
    load15: Mapped[float | None] = mapped_column(Float, nullable=True)
