"""
响应缓存模块 (Response Cache Module)

为 /api/stats 首页响应提供带 TTL 的缓存。聚合逻辑只依赖 ResponseCache 接口，
进程内单槽实现与 Redis 实现可以互换。缓存后端故障只记录日志并按未命中处理，
不会让请求失败。

TTL-bounded caching for the first page of /api/stats. Aggregation code depends
only on the ResponseCache interface, so the in-process single-slot cache and
the Redis cache are interchangeable. Backend failures are logged and treated as
a miss; they never fail the request.
"""
import json
import logging
import time
from typing import Any, Callable, Optional, Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError

from telegraf_dashboard.core.config import settings

logger = logging.getLogger(__name__)

STATS_CACHE_KEY = "stats:first_page"

# 缓存读写的 Redis 超时（秒），超时按未命中处理
REDIS_SOCKET_TIMEOUT = 1.0

# 共享 Redis 客户端，仅 redis 后端使用，首次读写时创建
_redis_client: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=REDIS_SOCKET_TIMEOUT,
            socket_timeout=REDIS_SOCKET_TIMEOUT,
        )
    return _redis_client


class ResponseCache(Protocol):
    async def get(self, key: str) -> Optional[Any]: ...

    async def set(self, key: str, value: Any, ttl: int) -> None: ...


class MemoryResponseCache:
    """
    进程内单槽缓存 (In-process Single-slot Cache)

    只保存一条 {key, data, timestamp}；写入新值会覆盖旧值。
    读写不加锁：并发未命中各自查库，最后一次写入生效。
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._slot: Optional[tuple[str, Any, float, int]] = None

    async def get(self, key: str) -> Optional[Any]:
        if self._slot is None:
            return None
        slot_key, data, stored_at, ttl = self._slot
        if slot_key != key or self._clock() - stored_at >= ttl:
            return None
        return data

    async def set(self, key: str, value: Any, ttl: int) -> None:
        self._slot = (key, value, self._clock(), ttl)

    def clear(self) -> None:
        self._slot = None


class RedisResponseCache:
    """Redis 缓存，值以 JSON 存储并由 SETEX 控制过期 (JSON values, expiry via SETEX)"""

    def __init__(self, client_factory: Callable = get_redis):
        self._client_factory = client_factory

    async def get(self, key: str) -> Optional[Any]:
        try:
            client = await self._client_factory()
            cached = await client.get(key)
        except RedisError as exc:
            logger.warning(f"Response cache read failed, treating as miss: {exc}")
            return None
        return json.loads(cached) if cached else None

    async def set(self, key: str, value: Any, ttl: int) -> None:
        try:
            client = await self._client_factory()
            await client.setex(key, ttl, json.dumps(value))
        except RedisError as exc:
            logger.warning(f"Response cache write failed: {exc}")


# 全局缓存实例（延迟创建） (Process-wide cache, created lazily)
_stats_cache: Optional[ResponseCache] = None


def build_stats_cache(backend: str) -> ResponseCache:
    if backend == "redis":
        return RedisResponseCache()
    if backend != "memory":
        logger.warning(f"Unknown STATS_CACHE_BACKEND={backend!r}, using in-process cache")
    return MemoryResponseCache()


async def get_stats_cache() -> ResponseCache:
    """FastAPI 依赖项：获取概览响应缓存 (FastAPI Dependency: Get Stats Response Cache)"""
    global _stats_cache
    if _stats_cache is None:
        _stats_cache = build_stats_cache(settings.stats_cache_backend)
    return _stats_cache


async def close_stats_cache() -> None:
    """释放缓存后端：丢弃进程内缓存并关闭 Redis 客户端 (Drop the cache and close Redis)"""
    global _stats_cache, _redis_client
    _stats_cache = None
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
