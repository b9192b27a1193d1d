"""Chunked upload session storage."""
from .chunk_store import InMemoryChunkSessionStore, RedisChunkSessionStore
from .lifecycle import get_chunk_store, init_chunk_store, shutdown_chunk_store, start_chunk_sweeper

__all__ = [
    "InMemoryChunkSessionStore",
    "RedisChunkSessionStore",
    "init_chunk_store",
    "get_chunk_store",
    "start_chunk_sweeper",
    "shutdown_chunk_store",
]
