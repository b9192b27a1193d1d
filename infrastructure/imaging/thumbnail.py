"""Pillow-backed thumbnail renderer."""
from __future__ import annotations

import io

import anyio
from PIL import Image, ImageOps

from application.ports.thumbnails import ThumbnailGenerationError


class PillowThumbnailGenerator:
    """Center-crops to a fixed box and encodes a progressive JPEG.

    Decoding runs in a worker thread so large photos do not block the loop.
    """

    content_type = "image/jpeg"

    def __init__(self, width: int = 300, height: int = 300, quality: int = 85):
        self.size = (width, height)
        self.quality = quality

    async def generate(self, data: bytes) -> bytes:
        return await anyio.to_thread.run_sync(self._render, data)

    def _render(self, data: bytes) -> bytes:
        try:
            with Image.open(io.BytesIO(data)) as img:
                img = ImageOps.exif_transpose(img)
                if img.mode != "RGB":
                    img = img.convert("RGB")
                thumb = ImageOps.fit(
                    img, self.size, method=Image.Resampling.LANCZOS, centering=(0.5, 0.5)
                )
                out = io.BytesIO()
                thumb.save(out, format="JPEG", quality=self.quality, progressive=True, optimize=True)
                return out.getvalue()
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            raise ThumbnailGenerationError(f"Cannot render thumbnail: {e}") from e
