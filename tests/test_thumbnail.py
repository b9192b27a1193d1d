import io

import pytest
from PIL import Image

from application.ports.thumbnails import ThumbnailGenerationError
from infrastructure.imaging import PillowThumbnailGenerator

from conftest import make_jpeg


@pytest.mark.asyncio
async def test_landscape_is_cropped_to_square_jpeg():
    rendered = await PillowThumbnailGenerator().generate(make_jpeg(1200, 800))

    with Image.open(io.BytesIO(rendered)) as img:
        assert img.format == "JPEG"
        assert img.size == (300, 300)


@pytest.mark.asyncio
async def test_png_with_alpha_is_flattened():
    buf = io.BytesIO()
    Image.new("RGBA", (640, 960), (10, 20, 30, 128)).save(buf, format="PNG")

    rendered = await PillowThumbnailGenerator(width=120, height=80).generate(buf.getvalue())

    with Image.open(io.BytesIO(rendered)) as img:
        assert img.mode == "RGB"
        assert img.size == (120, 80)


@pytest.mark.asyncio
async def test_undecodable_bytes_raise():
    with pytest.raises(ThumbnailGenerationError):
        await PillowThumbnailGenerator().generate(b"definitely not an image")
