"""Image loading and encoding shared by the vision providers."""

from __future__ import annotations

import base64
from io import BytesIO
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from ..utils import AcquisitionError

# Long side limit for images sent to cloud providers.
MAX_UPLOAD_SIDE_PX = 2048


def load_image(source: str | Path | bytes) -> Image.Image:
    """Open an image from a path or raw bytes and return it as RGB."""
    try:
        if isinstance(source, (bytes, bytearray)):
            image = Image.open(BytesIO(source))
        else:
            image = Image.open(str(source))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise AcquisitionError(f"Unreadable image: {exc}") from exc
    if image.mode not in ("RGB", "L"):
        image = image.convert("RGB")
    return image


def pil_to_base64_png(image: Image.Image, max_side: int = MAX_UPLOAD_SIDE_PX) -> str:
    if max(image.size) > max_side:
        image = image.copy()
        image.thumbnail((max_side, max_side))
    buf = BytesIO()
    image.save(buf, format="PNG")
    return base64.b64encode(buf.getvalue()).decode("utf-8")
