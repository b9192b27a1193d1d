"""
Redis 客户端生命周期 - 分片上传会话的共享存储

客户端以二进制模式工作（decode_responses=False），分片数据原样写入。
"""
from __future__ import annotations

import asyncio
import socket
from typing import Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from core.config import settings
from core.logging_config import get_logger

logger = get_logger(__name__)

_redis_client: Optional[aioredis.Redis] = None
_lock = asyncio.Lock()


def _keepalive_options() -> dict:
    # 构建跨平台 keepalive 选项（若可用）
    if hasattr(socket, "TCP_KEEPIDLE") and hasattr(socket, "TCP_KEEPINTVL") and hasattr(socket, "TCP_KEEPCNT"):
        return {
            socket.TCP_KEEPIDLE: 1,
            socket.TCP_KEEPINTVL: 1,
            socket.TCP_KEEPCNT: 3,
        }
    return {}


def namespaced(key: str, namespace: Optional[str] = None) -> str:
    """为键添加命名空间前缀"""
    ns = (namespace if namespace is not None else settings.redis.namespace).strip(":")
    return f"{ns}:{key}" if ns else key


async def init_redis_client(**kwargs) -> aioredis.Redis:
    """
    初始化全局 Redis 连接

    Raises:
        RuntimeError: 未配置 REDIS__URL
        RedisError: 连接失败
    """
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    async with _lock:
        if _redis_client is not None:
            return _redis_client

        if not settings.redis.url:
            raise RuntimeError("REDIS__URL 未配置，无法初始化Redis客户端")

        client = aioredis.from_url(
            settings.redis.url,
            decode_responses=False,
            max_connections=settings.redis.max_connections,
            socket_keepalive=True,
            socket_keepalive_options=_keepalive_options(),
            **kwargs,
        )
        try:
            await client.ping()
        except RedisError as e:
            logger.error("redis_init_failed", error=str(e))
            await client.aclose()
            raise

        _redis_client = client
        logger.info("redis_initialized", max_connections=settings.redis.max_connections)
        return _redis_client


def get_redis_client() -> Optional[aioredis.Redis]:
    """获取全局 Redis 连接；未初始化时返回 None"""
    return _redis_client


async def shutdown_redis_client() -> None:
    """关闭Redis连接"""
    global _redis_client

    if _redis_client is None:
        return
    try:
        await _redis_client.aclose()
        logger.info("redis_closed")
    except RedisError as e:
        logger.error("redis_close_failed", error=str(e))
    finally:
        _redis_client = None


__all__ = [
    "init_redis_client",
    "get_redis_client",
    "shutdown_redis_client",
    "namespaced",
]
