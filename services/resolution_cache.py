"""
存储桶解析缓存 (Resolution Cache)

缓存逻辑桶名 → 物理位置的解析结果，供存储网关高频查询
L1=Redis（不可用时回退到进程内存），L2=数据库（由 BucketResolver 负责）
任何存储桶或虚拟源的修改都会使对应条目失效
"""
import json
import logging
from typing import Any, Dict, Optional
import redis.asyncio as redis

from config.settings import settings

logger = logging.getLogger(__name__)


class ResolutionCache:
    """解析结果缓存"""

    def __init__(self) -> None:
        self._redis: Optional[redis.Redis] = None
        # 内存回退存储（Redis 不可用时使用）
        self._memory_cache: Dict[str, Dict[str, Any]] = {}
        self._use_memory = False
        self._ttl = settings.resolution_cache_ttl

    async def connect(self) -> None:
        """连接到 Redis"""
        try:
            self._redis = redis.Redis(
                host=settings.redis_host,
                port=settings.redis_port,
                db=settings.redis_db,
                password=settings.redis_password,
                decode_responses=True,
            )
            # 测试连接
            await self._redis.ping()
            logger.info(f"ResolutionCache connected to Redis at {settings.redis_host}:{settings.redis_port}")
        except Exception as e:
            logger.warning(f"Failed to connect to Redis: {e}. Using in-memory cache as fallback.")
            self._redis = None
            self._use_memory = True

    async def close(self) -> None:
        """关闭 Redis 连接"""
        if self._redis:
            await self._redis.close()
            logger.info("ResolutionCache disconnected from Redis")

    @property
    def backend(self) -> str:
        if self._use_memory:
            return "memory"
        return "redis" if self._redis else "disabled"

    def _make_key(self, bucket_name: str) -> str:
        """生成缓存键"""
        return f"resolve:{bucket_name}"

    async def get(self, bucket_name: str) -> Optional[Dict[str, Any]]:
        key = self._make_key(bucket_name)
        try:
            if self._use_memory:
                value = self._memory_cache.get(key)
                if value:
                    logger.debug(f"Resolution cache HIT (memory): {key}")
                return value
            if self._redis:
                raw = await self._redis.get(key)
                if raw:
                    logger.debug(f"Resolution cache HIT (redis): {key}")
                    return json.loads(raw)
        except Exception as e:
            logger.warning(f"Resolution cache read error: {e}, falling back to database")
        return None

    async def set(self, bucket_name: str, resolution: Dict[str, Any]) -> None:
        key = self._make_key(bucket_name)
        try:
            if self._use_memory:
                self._memory_cache[key] = resolution
            elif self._redis:
                await self._redis.setex(key, self._ttl, json.dumps(resolution))
        except Exception as e:
            logger.warning(f"Failed to set resolution cache: {e}")

    async def invalidate(self, bucket_name: str) -> None:
        key = self._make_key(bucket_name)
        try:
            if self._use_memory:
                self._memory_cache.pop(key, None)
            elif self._redis:
                await self._redis.delete(key)
            logger.debug(f"Resolution cache invalidated: {key}")
        except Exception as e:
            logger.warning(f"Failed to invalidate resolution cache: {e}")


# 全局单例
resolution_cache = ResolutionCache()
