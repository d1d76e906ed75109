"""Anthropic Claude vision provider (messages API with a base64 image block)."""

from __future__ import annotations

import logging
import os
import time
from typing import TYPE_CHECKING

import anthropic

from ..config import ANTHROPIC_VISION_MODEL, PROVIDER_TIMEOUT_SEC
from ..utils import ProviderUnavailableError
from .image_io import pil_to_base64_png

if TYPE_CHECKING:
    from PIL import Image

logger = logging.getLogger(__name__)

PROVIDER_NAME = "anthropic-vision"
CONFIDENCE = 93.0
VISION_MAX_RETRIES = 1
VISION_MAX_TOKENS = 2000


def is_configured() -> bool:
    return bool(os.environ.get("ANTHROPIC_API_KEY"))


def extract_text(
    image: "Image.Image",
    prompt: str,
    model: str = ANTHROPIC_VISION_MODEL,
    timeout_sec: float = PROVIDER_TIMEOUT_SEC,
    max_retries: int = VISION_MAX_RETRIES,
) -> str:
    """Return the text Claude reads from *image*."""
    if not is_configured():
        raise ProviderUnavailableError("ANTHROPIC_API_KEY not set")

    b64 = pil_to_base64_png(image)
    client = anthropic.Anthropic(api_key=os.environ["ANTHROPIC_API_KEY"], timeout=timeout_sec)
    last_err: Exception | None = None
    for attempt in range(max_retries + 1):
        try:
            response = client.messages.create(
                model=model,
                max_tokens=VISION_MAX_TOKENS,
                temperature=0.1,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "image",
                                "source": {
                                    "type": "base64",
                                    "media_type": "image/png",
                                    "data": b64,
                                },
                            },
                            {"type": "text", "text": prompt},
                        ],
                    }
                ],
            )
            parts = [block.text for block in response.content if getattr(block, "type", "") == "text"]
            return "\n".join(parts).strip()
        except anthropic.AnthropicError as e:
            logger.warning("Anthropic vision call failed (attempt %d): %s", attempt + 1, e)
            last_err = e
            if attempt < max_retries:
                time.sleep(1.0 * (attempt + 1))
    raise ProviderUnavailableError(f"Anthropic vision failed: {last_err}") from last_err
