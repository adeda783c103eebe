# services/preprocessing/normalize.py
from __future__ import annotations

import base64
from io import BytesIO

import cv2
import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from services.documents.models import Bitmap

JPEG_DATA_URI_PREFIX = "data:image/jpeg;base64,"


class ImageDecodeError(ValueError):
    """Raw capture could not be decoded as an image."""


def decode_image_with_exif(contents: bytes) -> np.ndarray:
    img_pil = Image.open(BytesIO(contents))
    img_pil = ImageOps.exif_transpose(img_pil)
    img_rgb = np.array(img_pil.convert("RGB"))
    return cv2.cvtColor(img_rgb, cv2.COLOR_RGB2BGR)


def decode_bgr(contents: bytes) -> np.ndarray:
    if not contents:
        raise ImageDecodeError("empty image payload")
    try:
        img = decode_image_with_exif(contents)
    except (UnidentifiedImageError, OSError, ValueError):
        img = cv2.imdecode(np.frombuffer(contents, np.uint8), cv2.IMREAD_COLOR)

    if img is None or img.size == 0:
        raise ImageDecodeError("could not decode image")
    return img


def clamp_width(img: np.ndarray, max_width: int) -> np.ndarray:
    """Downscale to `max_width` keeping aspect ratio; never upscale."""
    h, w = img.shape[:2]
    if w <= max_width:
        return img
    scale = max_width / w
    new_h = max(1, int(round(h * scale)))
    return cv2.resize(img, (max_width, new_h), interpolation=cv2.INTER_AREA)


def encode_jpeg_data_uri(img_bgr: np.ndarray, quality: float) -> str:
    ok, buf = cv2.imencode(".jpg", img_bgr, [int(cv2.IMWRITE_JPEG_QUALITY), int(round(quality * 100))])
    if not ok:
        raise ImageDecodeError("could not re-encode image as JPEG")
    return JPEG_DATA_URI_PREFIX + base64.b64encode(buf.tobytes()).decode("ascii")


def decode_data_uri(data_uri: str) -> bytes:
    """Bytes of a base64 data URI (a bare base64 payload is accepted too)."""
    payload = data_uri.split(",", 1)[1] if data_uri.startswith("data:") else data_uri
    try:
        return base64.b64decode(payload, validate=False)
    except (ValueError, TypeError) as e:
        raise ImageDecodeError(f"invalid base64 payload: {e}") from e


def normalize_image(contents: bytes, max_width: int, quality: float) -> Bitmap:
    """
    Decode a raw capture and re-encode it as a JPEG no wider than `max_width`.
    Raises ImageDecodeError for unreadable input.
    """
    if max_width < 1:
        raise ValueError(f"max_width must be >= 1, got {max_width}")
    if not 0.0 < quality <= 1.0:
        raise ValueError(f"quality must be in (0, 1], got {quality}")

    img = clamp_width(decode_bgr(contents), max_width)
    h, w = img.shape[:2]
    return Bitmap(data_uri=encode_jpeg_data_uri(img, quality), width=int(w), height=int(h))
