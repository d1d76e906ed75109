"""Ordered vision/OCR provider chain with fall-through on failure.

Providers are registered by name and resolved from ``VISION_PROVIDERS``; the
local Tesseract engine is always the last link. A provider that is not
configured, raises, or returns fewer than ``MIN_PROVIDER_TEXT_CHARS`` of text
is logged and skipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Iterable, Sequence

from . import ocr
from .config import MIN_PROVIDER_TEXT_CHARS, VISION_PROVIDERS
from .providers import anthropic_vision, openai_vision
from .utils import AcquisitionError, check_binary_exists

if TYPE_CHECKING:
    from PIL import Image

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VisionProvider:
    """One link of the chain: ``extract(image, prompt) -> (text, confidence)``."""

    name: str
    is_configured: Callable[[], bool]
    extract: Callable[["Image.Image", str], tuple[str, float]]


@dataclass(frozen=True)
class ProviderResult:
    text: str
    confidence: float
    method: str


# Module attributes are looked up at call time so tests can patch them.
def _openai_extract(image: "Image.Image", prompt: str) -> tuple[str, float]:
    return openai_vision.extract_text(image, prompt), openai_vision.CONFIDENCE


def _anthropic_extract(image: "Image.Image", prompt: str) -> tuple[str, float]:
    return anthropic_vision.extract_text(image, prompt), anthropic_vision.CONFIDENCE


def _tesseract_extract(image: "Image.Image", prompt: str) -> tuple[str, float]:  # noqa: ARG001
    result = ocr.ocr_image(image)
    return result["text"], float(result["confidence"])


PROVIDERS: dict[str, VisionProvider] = {
    "openai": VisionProvider(
        name=openai_vision.PROVIDER_NAME,
        is_configured=lambda: openai_vision.is_configured(),
        extract=_openai_extract,
    ),
    "anthropic": VisionProvider(
        name=anthropic_vision.PROVIDER_NAME,
        is_configured=lambda: anthropic_vision.is_configured(),
        extract=_anthropic_extract,
    ),
    "tesseract": VisionProvider(
        name=ocr.PROVIDER_NAME,
        is_configured=lambda: check_binary_exists("tesseract"),
        extract=_tesseract_extract,
    ),
}

PROVIDER_ALIASES: dict[str, str] = {
    "gpt": "openai",
    "openai-vision": "openai",
    "claude": "anthropic",
    "anthropic-vision": "anthropic",
    "local": "tesseract",
    "ocr": "tesseract",
}


def resolve_chain(names: Iterable[str] = VISION_PROVIDERS) -> list[VisionProvider]:
    """Build the provider chain in the configured order, Tesseract last."""
    keys: list[str] = []
    for raw in names:
        key = raw.strip().lower()
        key = PROVIDER_ALIASES.get(key, key)
        if key not in PROVIDERS:
            logger.warning("Unknown vision provider %r ignored", raw)
            continue
        if key != "tesseract" and key not in keys:
            keys.append(key)
    keys.append("tesseract")
    return [PROVIDERS[key] for key in keys]


def extract_with_fallback(
    image: "Image.Image",
    prompt: str,
    chain: Sequence[VisionProvider] | None = None,
    min_chars: int = MIN_PROVIDER_TEXT_CHARS,
) -> ProviderResult:
    """Run *image* through the chain and return the first usable result.

    Raises AcquisitionError when every provider fails.
    """
    providers = list(chain) if chain is not None else resolve_chain()
    failures: list[str] = []
    for provider in providers:
        if not provider.is_configured():
            logger.info("Vision provider %s not configured; skipping", provider.name)
            failures.append(f"{provider.name}: not configured")
            continue
        try:
            text, confidence = provider.extract(image, prompt)
        except Exception as exc:
            logger.warning("Vision provider %s failed: %s", provider.name, exc)
            failures.append(f"{provider.name}: {type(exc).__name__}: {exc}")
            continue
        text = (text or "").strip()
        if len(text) < min_chars:
            logger.warning(
                "Vision provider %s returned %d chars (< %d); trying next",
                provider.name, len(text), min_chars,
            )
            failures.append(f"{provider.name}: insufficient text")
            continue
        return ProviderResult(
            text=text,
            confidence=max(0.0, min(100.0, float(confidence))),
            method=provider.name,
        )
    raise AcquisitionError("All vision providers failed (" + "; ".join(failures) + ")")
