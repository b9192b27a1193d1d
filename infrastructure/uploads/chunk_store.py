"""Chunk session stores for chunked relay uploads.

``InMemoryChunkSessionStore`` keeps one arena per process, bounded by session
count and buffered bytes and swept on a TTL. ``RedisChunkSessionStore`` shares
sessions across workers and lets Redis expire idle ones.
"""
from __future__ import annotations

import asyncio
import json
import time
from dataclasses import asdict, dataclass, field
from typing import Callable, Optional

from redis import asyncio as aioredis

from application.ports.chunk_store import ChunkProgress, ChunkSessionInfo
from core.logging_config import get_logger
from domain.common.exceptions import UploadCapacityExceededException
from infrastructure.external.cache import namespaced

logger = get_logger(__name__)


@dataclass
class _Session:
    info: ChunkSessionInfo
    chunks: dict[int, bytes] = field(default_factory=dict)
    touched_at: float = 0.0

    @property
    def received(self) -> int:
        return sum(len(c) for c in self.chunks.values())


class InMemoryChunkSessionStore:

    def __init__(
        self,
        *,
        ttl: float = 3600,
        max_sessions: int = 256,
        max_buffered_bytes: int = 4 * 1024 * 1024 * 1024,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl = ttl
        self._max_sessions = max_sessions
        self._max_buffered_bytes = max_buffered_bytes
        self._clock = clock
        self._sessions: dict[str, _Session] = {}
        self._buffered = 0
        self._lock = asyncio.Lock()

    @property
    def buffered_bytes(self) -> int:
        return self._buffered

    def __len__(self) -> int:
        return len(self._sessions)

    async def append(self, info: ChunkSessionInfo, offset: int, data: bytes) -> ChunkProgress:
        async with self._lock:
            session = self._sessions.get(info.session_id)
            if session is None:
                if len(self._sessions) >= self._max_sessions:
                    logger.warning("chunk_sessions_exhausted", max_sessions=self._max_sessions)
                    raise UploadCapacityExceededException(reason="chunk_sessions")
                session = _Session(info=info)
                self._sessions[info.session_id] = session

            previous = len(session.chunks.get(offset, b""))
            if self._buffered - previous + len(data) > self._max_buffered_bytes:
                logger.warning(
                    "chunk_buffer_exhausted",
                    session_id=info.session_id,
                    buffered=self._buffered,
                    max_buffered_bytes=self._max_buffered_bytes,
                )
                raise UploadCapacityExceededException(reason="chunk_buffer")

            session.chunks[offset] = data
            session.touched_at = self._clock()
            self._buffered += len(data) - previous
            return ChunkProgress(received=session.received, total=session.info.total_size)

    async def get_info(self, session_id: str) -> Optional[ChunkSessionInfo]:
        session = self._sessions.get(session_id)
        return session.info if session else None

    async def assemble(self, session_id: str) -> bytes:
        session = self._sessions.get(session_id)
        if session is None:
            raise KeyError(session_id)
        return b"".join(session.chunks[offset] for offset in sorted(session.chunks))

    async def discard(self, session_id: str) -> None:
        async with self._lock:
            session = self._sessions.pop(session_id, None)
            if session is not None:
                self._buffered -= session.received

    async def sweep(self) -> int:
        cutoff = self._clock() - self._ttl
        async with self._lock:
            expired = [sid for sid, s in self._sessions.items() if s.touched_at < cutoff]
            for sid in expired:
                self._buffered -= self._sessions.pop(sid).received
        if expired:
            logger.info("chunk_sessions_swept", count=len(expired))
        return len(expired)


class RedisChunkSessionStore:
    """Sessions live under ``<ns>:chunks:<id>:{meta,data,sizes}`` with a sliding TTL."""

    def __init__(self, client: aioredis.Redis, *, ttl: int = 3600, namespace: Optional[str] = None):
        self._client = client
        self._ttl = int(ttl)
        self._namespace = namespace

    def _key(self, session_id: str, part: str) -> str:
        return namespaced(f"chunks:{session_id}:{part}", self._namespace)

    async def append(self, info: ChunkSessionInfo, offset: int, data: bytes) -> ChunkProgress:
        sid = info.session_id
        meta, chunks, sizes = self._key(sid, "meta"), self._key(sid, "data"), self._key(sid, "sizes")
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.set(meta, json.dumps(asdict(info)), nx=True, ex=self._ttl)
            pipe.hset(chunks, str(offset), data)
            pipe.hset(sizes, str(offset), len(data))
            pipe.expire(meta, self._ttl)
            pipe.expire(chunks, self._ttl)
            pipe.expire(sizes, self._ttl)
            pipe.hvals(sizes)
            results = await pipe.execute()
        received = sum(int(v) for v in results[-1])
        return ChunkProgress(received=received, total=info.total_size)

    async def get_info(self, session_id: str) -> Optional[ChunkSessionInfo]:
        raw = await self._client.get(self._key(session_id, "meta"))
        if raw is None:
            return None
        return ChunkSessionInfo(**json.loads(raw))

    async def assemble(self, session_id: str) -> bytes:
        chunks = await self._client.hgetall(self._key(session_id, "data"))
        if not chunks:
            raise KeyError(session_id)
        return b"".join(chunks[k] for k in sorted(chunks, key=int))

    async def discard(self, session_id: str) -> None:
        await self._client.delete(
            self._key(session_id, "meta"),
            self._key(session_id, "data"),
            self._key(session_id, "sizes"),
        )

    async def sweep(self) -> int:
        # 过期由 Redis TTL 负责
        return 0
