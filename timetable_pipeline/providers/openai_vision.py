"""OpenAI vision provider (chat completions with an inline PNG)."""

from __future__ import annotations

import logging
import os
import time
from typing import TYPE_CHECKING

import openai

from ..config import OPENAI_VISION_MODEL, PROVIDER_TIMEOUT_SEC
from ..utils import ProviderUnavailableError
from .image_io import pil_to_base64_png

if TYPE_CHECKING:
    from PIL import Image

logger = logging.getLogger(__name__)

PROVIDER_NAME = "openai-vision"
CONFIDENCE = 95.0
VISION_MAX_RETRIES = 1
VISION_MAX_TOKENS = 2000


def is_configured() -> bool:
    return bool(os.environ.get("OPENAI_API_KEY"))


def extract_text(
    image: "Image.Image",
    prompt: str,
    model: str = OPENAI_VISION_MODEL,
    timeout_sec: float = PROVIDER_TIMEOUT_SEC,
    max_retries: int = VISION_MAX_RETRIES,
) -> str:
    """Return the text GPT vision reads from *image*.

    Raises ProviderUnavailableError when no API key is set or every attempt
    fails.
    """
    if not is_configured():
        raise ProviderUnavailableError("OPENAI_API_KEY not set")

    b64 = pil_to_base64_png(image)
    client = openai.OpenAI()
    last_err: Exception | None = None
    for attempt in range(max_retries + 1):
        try:
            resp = client.chat.completions.create(
                model=model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": prompt},
                            {
                                "type": "image_url",
                                "image_url": {"url": f"data:image/png;base64,{b64}", "detail": "high"},
                            },
                        ],
                    }
                ],
                temperature=0.1,
                max_tokens=VISION_MAX_TOKENS,
                timeout=timeout_sec,
            )
            if resp.choices and resp.choices[0].message.content:
                return resp.choices[0].message.content.strip()
            return ""
        except openai.OpenAIError as e:
            logger.warning("OpenAI vision call failed (attempt %d): %s", attempt + 1, e)
            last_err = e
            if attempt < max_retries:
                time.sleep(1.0 * (attempt + 1))
    raise ProviderUnavailableError(f"OpenAI vision failed: {last_err}") from last_err
