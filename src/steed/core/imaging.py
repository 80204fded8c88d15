"""Screenshot post-processing with Pillow.

The driver always renders PNG. Cropping and conversion to the other
supported formats happen here.
"""

from __future__ import annotations

from io import BytesIO

from PIL import Image

from steed.core.models import BoundingBox

FORMATS = {"PNG": "PNG", "JPEG": "JPEG", "JPG": "JPEG", "GIF": "GIF"}


def image_format(name: str) -> str:
    """Return the Pillow format name for *name* (case-insensitive)."""
    try:
        return FORMATS[name.upper()]
    except KeyError:
        raise ValueError(f"Unsupported image format {name!r}; use PNG, JPEG or GIF") from None


def convert(png_bytes: bytes, fmt: str) -> bytes:
    """Re-encode PNG bytes as *fmt*. PNG input is returned unchanged."""
    fmt = image_format(fmt)
    if fmt == "PNG":
        return png_bytes
    img = Image.open(BytesIO(png_bytes))
    if fmt == "JPEG" and img.mode not in ("RGB", "L"):
        img = img.convert("RGB")
    buf = BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def crop(png_bytes: bytes, box: BoundingBox, zoom: float = 1.0) -> bytes:
    """Cut *box* out of a full-page PNG.

    The box is in CSS pixels; *zoom* scales it to rendered pixels. The
    result is clipped to the image bounds.
    """
    img = Image.open(BytesIO(png_bytes))
    left = max(0, round(box.left * zoom))
    top = max(0, round(box.top * zoom))
    right = min(img.width, round((box.left + box.width) * zoom))
    bottom = min(img.height, round((box.top + box.height) * zoom))
    if right <= left or bottom <= top:
        raise ValueError(f"Crop area {box.model_dump()} lies outside the {img.width}x{img.height} page")
    buf = BytesIO()
    img.crop((left, top, right, bottom)).save(buf, format="PNG", optimize=True)
    return buf.getvalue()
