"""缓存层对外暴露的接口"""
from .redis_client import (
    get_redis_client,
    init_redis_client,
    namespaced,
    shutdown_redis_client,
)

__all__ = [
    "init_redis_client",
    "get_redis_client",
    "shutdown_redis_client",
    "namespaced",
]
