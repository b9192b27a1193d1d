"""Thumbnail rendering port."""
from __future__ import annotations

from typing import Protocol


class ThumbnailGenerationError(Exception):
    """Raised when an image cannot be decoded or encoded."""


class ThumbnailGenerator(Protocol):
    content_type: str

    async def generate(self, data: bytes) -> bytes:
        """Return encoded thumbnail bytes or raise ThumbnailGenerationError."""
        ...
