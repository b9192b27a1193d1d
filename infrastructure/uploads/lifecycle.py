"""Process-wide chunk session store and its background sweeper."""
from __future__ import annotations

import asyncio
from typing import Optional

from application.ports.chunk_store import ChunkSessionStore
from core.config import settings
from core.logging_config import get_logger
from infrastructure.external.cache import get_redis_client

from .chunk_store import InMemoryChunkSessionStore, RedisChunkSessionStore

logger = get_logger(__name__)

_store: Optional[ChunkSessionStore] = None
_sweeper: Optional[asyncio.Task] = None


def init_chunk_store() -> ChunkSessionStore:
    """Build the configured store; falls back to memory when Redis is not connected."""
    global _store
    if _store is not None:
        return _store

    cfg = settings.upload
    client = get_redis_client() if cfg.chunk_store == "redis" else None
    if cfg.chunk_store == "redis" and client is None:
        logger.warning("chunk_store_redis_unavailable", fallback="memory")

    if client is not None:
        _store = RedisChunkSessionStore(client, ttl=cfg.chunk_session_ttl)
        logger.info("chunk_store_initialized", backend="redis", ttl=cfg.chunk_session_ttl)
    else:
        _store = InMemoryChunkSessionStore(
            ttl=cfg.chunk_session_ttl,
            max_sessions=cfg.chunk_max_sessions,
            max_buffered_bytes=cfg.chunk_max_buffered_bytes,
        )
        logger.info("chunk_store_initialized", backend="memory", ttl=cfg.chunk_session_ttl)
    return _store


def get_chunk_store() -> Optional[ChunkSessionStore]:
    return _store


async def _sweep_forever(store: ChunkSessionStore, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            await store.sweep()
        except Exception as e:  # keep the sweeper alive
            logger.error("chunk_sweep_failed", error=str(e), exc_info=True)


def start_chunk_sweeper(interval: Optional[float] = None) -> Optional[asyncio.Task]:
    global _sweeper
    if _store is None or _sweeper is not None:
        return _sweeper
    _sweeper = asyncio.create_task(
        _sweep_forever(_store, interval or settings.upload.chunk_sweep_interval),
        name="chunk-session-sweeper",
    )
    return _sweeper


async def shutdown_chunk_store() -> None:
    global _store, _sweeper
    if _sweeper is not None:
        _sweeper.cancel()
        try:
            await _sweeper
        except asyncio.CancelledError:
            pass
        _sweeper = None
    _store = None
