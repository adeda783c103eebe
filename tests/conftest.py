from __future__ import annotations

from io import BytesIO

import pytest
from PIL import Image, ImageDraw


def jpeg_bytes(width: int = 420, height: int = 594, color=(245, 245, 240)) -> bytes:
    img = Image.new("RGB", (width, height), color)
    draw = ImageDraw.Draw(img)
    draw.rectangle((20, 20, width - 20, 60), fill=(30, 30, 30))
    buf = BytesIO()
    img.save(buf, format="JPEG", quality=90)
    return buf.getvalue()


def signature_png(width: int = 240, height: int = 120) -> bytes:
    img = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    draw = ImageDraw.Draw(img)
    draw.line((10, height - 20, width // 2, 15, width - 10, height - 30), fill=(0, 0, 0, 255), width=6)
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def make_jpeg():
    return jpeg_bytes


@pytest.fixture
def signature():
    return signature_png()
