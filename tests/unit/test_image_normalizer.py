from __future__ import annotations

from io import BytesIO

import numpy as np
import pytest
from PIL import Image

from services.preprocessing.normalize import (
    JPEG_DATA_URI_PREFIX,
    ImageDecodeError,
    clamp_width,
    decode_data_uri,
    normalize_image,
)


def test_wide_capture_is_downscaled_to_max_width(make_jpeg):
    bmp = normalize_image(make_jpeg(2000, 1000), max_width=1024, quality=0.6)
    assert bmp.width == 1024
    assert bmp.height == 512
    assert bmp.data_uri.startswith(JPEG_DATA_URI_PREFIX)


def test_small_capture_is_never_upscaled(make_jpeg):
    bmp = normalize_image(make_jpeg(100, 50), max_width=150, quality=0.5)
    assert (bmp.width, bmp.height) == (100, 50)


def test_output_decodes_back_to_a_jpeg_of_reported_size(make_jpeg):
    bmp = normalize_image(make_jpeg(800, 1200), max_width=150, quality=0.5)
    img = Image.open(BytesIO(decode_data_uri(bmp.data_uri)))
    assert img.format == "JPEG"
    assert img.size == (bmp.width, bmp.height)
    assert bmp.width <= 150


def test_png_input_is_reencoded_as_jpeg():
    buf = BytesIO()
    Image.new("RGBA", (300, 200), (10, 200, 10, 255)).save(buf, format="PNG")
    bmp = normalize_image(buf.getvalue(), max_width=1024, quality=0.6)
    assert bmp.data_uri.startswith(JPEG_DATA_URI_PREFIX)
    assert bmp.width == 300


@pytest.mark.parametrize("contents", [b"", b"definitely not an image"])
def test_unreadable_capture_raises(contents):
    with pytest.raises(ImageDecodeError):
        normalize_image(contents, max_width=1024, quality=0.6)


@pytest.mark.parametrize("max_width,quality", [(0, 0.6), (1024, 0.0), (1024, 1.5)])
def test_invalid_parameters_are_rejected(make_jpeg, max_width, quality):
    with pytest.raises(ValueError):
        normalize_image(make_jpeg(), max_width=max_width, quality=quality)


def test_clamp_width_keeps_aspect_ratio():
    img = np.zeros((300, 1200, 3), dtype=np.uint8)
    out = clamp_width(img, 400)
    assert out.shape[:2] == (100, 400)
