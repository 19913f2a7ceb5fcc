"""基于 Redis 的结果缓存。

由调用方创建并注入（如 InsightEngine 的服务分析），不使用模块级全局状态。
未配置 REDIS_URL 或 Redis 不可达时缓存关闭：读取总是未命中，写入被忽略，
get_or_compute 每次都重新计算。
"""
import pickle
from typing import Any, Callable, Optional

import redis
from loguru import logger

from config.settings import settings


def connect_redis(url: Optional[str] = None) -> Optional[redis.Redis]:
    """按 URL 建立 Redis 客户端并探活。

    Args:
        url: Redis 地址，不传时取 settings.redis_url。

    Returns:
        可用的客户端；未配置或连接失败时返回 None。
    """
    url = url or settings.redis_url
    if not url:
        return None
    client = redis.Redis.from_url(url, socket_connect_timeout=1)
    try:
        client.ping()
    except redis.RedisError as e:
        logger.warning(f"Redis 连接失败: {e}，缓存已关闭")
        return None
    logger.info("Redis 缓存已连接")
    return client


class InsightCache:
    """按键缓存计算结果，过期由 Redis 负责。

    Args:
        client: Redis 客户端（测试中可传 fakeredis），不传时按 settings.redis_url 连接。
        default_ttl: 默认过期秒数，不传时取 settings.insights_cache_ttl_seconds。
        namespace: 键前缀。

    Example:
        ```python
        cache = InsightCache(default_ttl=60)
        report = cache.get_or_compute("service-analytics:30", build_report)
        ```
    """

    def __init__(self, client: Optional[redis.Redis] = None,
                 default_ttl: Optional[float] = None,
                 namespace: str = "insights") -> None:
        self.client = client if client is not None else connect_redis()
        self.default_ttl = (
            settings.insights_cache_ttl_seconds if default_ttl is None else default_ttl
        )
        self.namespace = namespace

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def _make_key(self, *parts: Any) -> str:
        return f"{self.namespace}:" + ":".join(str(part) for part in parts)

    def get(self, key: str, default: Any = None) -> Any:
        if not self.enabled:
            return default
        try:
            raw = self.client.get(self._make_key(key))
        except redis.RedisError as e:
            logger.warning(f"缓存读取失败 {key}: {e}")
            return default
        if raw is None:
            return default
        return pickle.loads(raw)

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        """写入缓存，返回是否成功。"""
        if not self.enabled:
            return False
        ttl = self.default_ttl if ttl is None else ttl
        try:
            self.client.set(
                self._make_key(key), pickle.dumps(value), px=max(1, int(ttl * 1000))
            )
        except redis.RedisError as e:
            logger.warning(f"缓存写入失败 {key}: {e}")
            return False
        return True

    def ttl(self, key: str) -> Optional[float]:
        """剩余秒数；不存在、已过期或缓存关闭时返回 None。"""
        if not self.enabled:
            return None
        try:
            remaining_ms = self.client.pttl(self._make_key(key))
        except redis.RedisError as e:
            logger.warning(f"缓存 TTL 查询失败 {key}: {e}")
            return None
        return remaining_ms / 1000 if remaining_ms > 0 else None

    def invalidate(self, key: Optional[str] = None) -> int:
        """删除指定键；不传键时清空当前命名空间。

        Returns:
            删除的条目数。
        """
        if not self.enabled:
            return 0
        try:
            if key is not None:
                return self.client.delete(self._make_key(key))
            keys = list(self.client.scan_iter(match=f"{self.namespace}:*"))
            return self.client.delete(*keys) if keys else 0
        except redis.RedisError as e:
            logger.warning(f"缓存清理失败: {e}")
            return 0

    def get_or_compute(self, key: str, compute: Callable[[], Any],
                       ttl: Optional[float] = None) -> Any:
        """命中则直接返回，否则计算并写入缓存。"""
        sentinel = object()
        value = self.get(key, sentinel)
        if value is not sentinel:
            return value
        value = compute()
        self.set(key, value, ttl)
        return value
