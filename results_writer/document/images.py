"""
Data-URI images: decoding, measuring and fitting into the page's image box.
"""

import base64
import binascii
import io
import re
from typing import Tuple

from PIL import Image

DATA_URI_RE = re.compile(r"^data:(image/[\w.+-]+)?(;base64)?,(.*)$", re.DOTALL | re.IGNORECASE)


def is_data_image(src: str) -> bool:
    return (src or "").strip().lower().startswith("data:image")


def decode_data_uri(uri: str) -> Tuple[bytes, str]:
    """Return (payload bytes, mime type) for a base64 image data URI."""
    match = DATA_URI_RE.match((uri or "").strip())
    if not match or not match.group(2):
        raise ValueError("Not a base64 image data URI")
    mime = (match.group(1) or "image/png").lower()
    payload = re.sub(r"\s+", "", match.group(3))
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 image payload: {str(e)}") from e
    if not data:
        raise ValueError("Empty image payload")
    return data, mime


def encode_data_uri(data: bytes, mime: str = "image/png") -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode()}"


def image_size(data: bytes) -> Tuple[int, int]:
    """Natural pixel size of an encoded image."""
    with Image.open(io.BytesIO(data)) as img:
        return img.size


def fit_dimensions(width: int, height: int, max_width: float, max_height: float) -> Tuple[int, int]:
    """Scale (width, height) into the box, keeping aspect ratio and never upscaling."""
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid image size {width}x{height}")

    fitted_width = min(width, max_width)
    fitted_height = round(fitted_width * height / width)
    if fitted_height > max_height:
        fitted_height = max_height
        fitted_width = round(fitted_height * width / height)
    return int(round(fitted_width)), int(round(fitted_height))


def to_png(data: bytes) -> bytes:
    """Re-encode any Pillow-readable image as PNG."""
    with Image.open(io.BytesIO(data)) as img:
        if img.mode not in ("RGB", "RGBA", "L", "LA", "P"):
            img = img.convert("RGBA")
        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
    return buffer.getvalue()
