# services/rendering/compositor.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from io import BytesIO
from typing import Optional, Tuple, Union

from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError

from services.preprocessing.normalize import ImageDecodeError, decode_data_uri

MM_PER_PT = 25.4 / 72.0
MM_PER_INCH = 25.4
CAPTION_RGB = (100, 100, 100)
CAPTION_FONT = "DejaVuSans.ttf"

ImageSource = Union[bytes, str]  # raw bytes or data URI


class CompositionError(RuntimeError):
    """PDF synthesis failed; nothing produced by this call may be kept."""


@dataclass(frozen=True)
class PageLayout:
    """Physical layout of the output page, in millimetres (A4 width by default)."""

    page_width_mm: float = 210.0
    signature_width_mm: float = 60.0
    signature_height_mm: float = 30.0
    default_margin_mm: float = 10.0
    default_max_top_mm: float = 280.0
    caption_font_pt: float = 10.0
    caption_gap_mm: float = 5.0


@dataclass(frozen=True)
class SignaturePlacement:
    x_mm: float
    y_mm: float
    width_mm: float
    height_mm: float


def page_height_mm(image_width: int, image_height: int, layout: PageLayout) -> float:
    if image_width <= 0 or image_height <= 0:
        raise CompositionError(f"invalid page bitmap size {image_width}x{image_height}")
    return image_height * layout.page_width_mm / image_width


def place_signature(
    page_width: float,
    page_height: float,
    position: Optional[Tuple[float, float]],
    layout: PageLayout,
) -> SignaturePlacement:
    """
    Top-left corner of the signature box on the page.
    `position` is a fraction of page width/height the box is centred on; without it the
    box goes bottom-right. The result always lies inside [0, page - box] on both axes.
    """
    sig_w, sig_h = layout.signature_width_mm, layout.signature_height_mm

    if position is not None:
        px, py = position
        x = px * page_width - sig_w / 2
        y = py * page_height - sig_h / 2
    else:
        x = page_width - sig_w - layout.default_margin_mm
        y = min(page_height - sig_h - layout.default_margin_mm, layout.default_max_top_mm)

    x = max(0.0, min(x, page_width - sig_w))
    y = max(0.0, min(y, page_height - sig_h))
    return SignaturePlacement(x_mm=x, y_mm=y, width_mm=sig_w, height_mm=sig_h)


def signed_caption(signed_on: date) -> str:
    return f"Firmado: {signed_on:%d/%m/%Y}"


def caption_baseline_px(box_top: int, box_h: int, gap_px: int, font_px: int, page_h: int) -> int:
    """Baseline under the box, or above it when the caption would run off the page bottom."""
    below = box_top + box_h + gap_px
    if below <= page_h:
        return below
    return max(font_px, box_top - gap_px)


def _open(source: ImageSource, mode: str) -> Image.Image:
    raw = decode_data_uri(source) if isinstance(source, str) else source
    img = Image.open(BytesIO(raw))
    img.load()
    return img.convert(mode)


def _caption_font(size_px: int) -> ImageFont.ImageFont:
    try:
        return ImageFont.truetype(CAPTION_FONT, size_px)
    except OSError:
        return ImageFont.load_default(size=size_px)


def _overlay_signature(
    page: Image.Image,
    signature: Image.Image,
    placement: SignaturePlacement,
    px_per_mm: float,
    signed_on: date,
    layout: PageLayout,
) -> None:
    box_w = max(1, int(round(placement.width_mm * px_per_mm)))
    box_h = max(1, int(round(placement.height_mm * px_per_mm)))
    x_px = int(round(placement.x_mm * px_per_mm))
    y_px = int(round(placement.y_mm * px_per_mm))
    # rounding must not push the box past the page edge
    x_px = max(0, min(x_px, page.width - box_w))
    y_px = max(0, min(y_px, page.height - box_h))

    sig = signature.resize((box_w, box_h), Image.Resampling.LANCZOS)
    page.paste(sig, (x_px, y_px), sig)

    font_px = max(1, int(round(layout.caption_font_pt * MM_PER_PT * px_per_mm)))
    gap_px = int(round(layout.caption_gap_mm * px_per_mm))
    baseline_px = caption_baseline_px(y_px, box_h, gap_px, font_px, page.height)
    draw = ImageDraw.Draw(page)
    draw.text((x_px, baseline_px - font_px), signed_caption(signed_on), font=_caption_font(font_px), fill=CAPTION_RGB)


def compose_pdf(
    page_image: ImageSource,
    signature: Optional[ImageSource] = None,
    position: Optional[Tuple[float, float]] = None,
    layout: Optional[PageLayout] = None,
    signed_on: Optional[date] = None,
) -> bytes:
    """
    Render one bitmap as a single-page PDF whose width is `layout.page_width_mm` and
    whose height keeps the bitmap's aspect ratio. With a signature, overlay it at
    `position` (or bottom-right) and stamp the signing date under it.
    """
    layout = layout or PageLayout()
    try:
        page = _open(page_image, "RGB")
        px_per_mm = page.width / layout.page_width_mm
        height_mm = page_height_mm(page.width, page.height, layout)

        if signature is not None:
            placement = place_signature(layout.page_width_mm, height_mm, position, layout)
            _overlay_signature(
                page,
                _open(signature, "RGBA"),
                placement,
                px_per_mm,
                signed_on or date.today(),
                layout,
            )

        buf = BytesIO()
        page.save(buf, format="PDF", resolution=page.width * MM_PER_INCH / layout.page_width_mm)
        return buf.getvalue()
    except CompositionError:
        raise
    except (ImageDecodeError, UnidentifiedImageError, OSError, ValueError) as e:
        raise CompositionError(f"PDF synthesis failed: {e}") from e
