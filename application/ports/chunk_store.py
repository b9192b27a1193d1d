"""Chunk session store port used by chunked relay uploads."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class ChunkSessionInfo:
    """Upload parameters fixed by the first chunk of a session."""

    session_id: str
    job_id: int
    file_name: str
    content_type: str
    total_size: int
    category: str
    media_kind: str
    uploader_id: str
    licensee_id: str


@dataclass(frozen=True)
class ChunkProgress:
    received: int
    total: int

    @property
    def complete(self) -> bool:
        return self.received == self.total


class ChunkSessionStore(Protocol):
    async def append(self, info: ChunkSessionInfo, offset: int, data: bytes) -> ChunkProgress:
        """Store one chunk; re-sending an offset replaces the earlier bytes."""
        ...

    async def get_info(self, session_id: str) -> Optional[ChunkSessionInfo]:
        ...

    async def assemble(self, session_id: str) -> bytes:
        """Concatenate chunks in offset order."""
        ...

    async def discard(self, session_id: str) -> None:
        ...

    async def sweep(self) -> int:
        """Evict expired sessions; returns how many were dropped."""
        ...
