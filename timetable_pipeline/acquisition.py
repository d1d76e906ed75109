"""Text acquisition: pick an extraction strategy from the document's shape.

* image: straight to the provider chain.
* PDF: text layer density decides between direct text, hybrid (text plus
  vision) and full vision over rendered pages.
* DOCX: paragraph/table text plus vision over embedded images.

Vision failures degrade to whatever direct text exists, with a lower
confidence; acquisition only fails when there is nothing usable at all.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from . import docx_text, pdf_text
from .config import (
    DOCX_TEXT_MIN_CHARS,
    HYBRID_DENSITY_THRESHOLD,
    MIN_PROVIDER_TEXT_CHARS,
    SCANNED_DENSITY_THRESHOLD,
)
from .prompts import IMAGE_PROMPT, docx_image_prompt, pdf_page_prompt
from .provider_chain import VisionProvider, extract_with_fallback
from .providers.image_io import load_image
from .schema import AcquisitionResult
from .utils import (
    DOCX_MEDIA_TYPE,
    IMAGE_MEDIA_TYPES,
    PDF_MEDIA_TYPE,
    AcquisitionError,
    InsufficientTextError,
    UnsupportedMediaTypeError,
    validate_input_path,
)

logger = logging.getLogger(__name__)

PAGE_SEPARATOR = "\n\n--- Page Break ---\n\n"
IMAGE_SEPARATOR = "\n\n--- Image Break ---\n\n"
PDF_HYBRID_SEPARATOR = "\n\n--- AI Enhanced Extraction ---\n\n"
DOCX_HYBRID_SEPARATOR = "\n\n--- Embedded Images Text ---\n\n"

TEXT_LAYER_METHOD = "pdf-text"
DOCX_TEXT_METHOD = "docx-text"

# Confidence assigned to each outcome.
DIRECT_TEXT_CONFIDENCE = 95.0
PDF_HYBRID_CONFIDENCE_CAP = 90.0
PDF_SCANNED_FALLBACK_CONFIDENCE = 50.0
PDF_HYBRID_FALLBACK_CONFIDENCE = 70.0
DOCX_HYBRID_CONFIDENCE = 92.0
DOCX_SHORT_TEXT_CONFIDENCE = 70.0
DOCX_TEXT_FALLBACK_CONFIDENCE = 85.0
DOCX_SHORT_TEXT_FALLBACK_CONFIDENCE = 50.0


@dataclass
class _VisionPass:
    texts: list[str] = field(default_factory=list)
    confidences: list[float] = field(default_factory=list)
    methods: list[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.texts)

    def joined(self, separator: str) -> str:
        return separator.join(self.texts)

    @property
    def confidence(self) -> float:
        return sum(self.confidences) / len(self.confidences)

    @property
    def method(self) -> str:
        return "+".join(dict.fromkeys(self.methods))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def acquire(
    file_path: str | Path,
    media_type: str,
    chain: Sequence[VisionProvider] | None = None,
) -> AcquisitionResult:
    """Extract raw text from *file_path* according to its declared media type.

    Raises UnsupportedMediaTypeError, FileValidationError or AcquisitionError.
    """
    declared = (media_type or "").strip().lower()
    if declared in IMAGE_MEDIA_TYPES:
        handler = _acquire_image
    elif declared == PDF_MEDIA_TYPE:
        handler = _acquire_pdf
    elif declared == DOCX_MEDIA_TYPE:
        handler = _acquire_docx
    else:
        raise UnsupportedMediaTypeError(f"Unsupported media type: {media_type!r}")

    path = validate_input_path(file_path)
    start = time.monotonic()
    result = handler(path, chain)
    result.processing_time_ms = int((time.monotonic() - start) * 1000)
    logger.info(
        "Acquired %d chars from %s via %s/%s (confidence %.1f, %d ms)",
        len(result.text), path.name, result.strategy, result.method,
        result.confidence, result.processing_time_ms,
    )
    return result


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------
def _acquire_image(path: Path, chain: Sequence[VisionProvider] | None) -> AcquisitionResult:
    image = load_image(path)
    outcome = extract_with_fallback(image, IMAGE_PROMPT, chain=chain)
    return AcquisitionResult(
        text=outcome.text,
        confidence=outcome.confidence,
        method=outcome.method,
        strategy="image",
        images_processed=1,
        providers_used=[outcome.method],
    )


# ---------------------------------------------------------------------------
# PDF
# ---------------------------------------------------------------------------
def _vision_over_pages(
    path: Path, page_count: int, chain: Sequence[VisionProvider] | None,
) -> _VisionPass:
    vision = _VisionPass()
    for page_number in range(1, page_count + 1):
        try:
            image = pdf_text.render_page(path, page_number)
            outcome = extract_with_fallback(
                image, pdf_page_prompt(page_number, page_count), chain=chain,
            )
        except AcquisitionError as exc:
            logger.warning("No vision text for page %d of %s: %s", page_number, path.name, exc)
            continue
        vision.texts.append(outcome.text)
        vision.confidences.append(outcome.confidence)
        vision.methods.append(outcome.method)
    return vision


def _acquire_pdf(path: Path, chain: Sequence[VisionProvider] | None) -> AcquisitionResult:
    text, pages = pdf_text.extract_native_text(path)
    text = text.strip()
    page_count = max(len(pages), 1)
    density = pdf_text.text_density(text, page_count)
    logger.info("PDF %s: %d page(s), text density %.1f chars/page", path.name, page_count, density)

    if density >= HYBRID_DENSITY_THRESHOLD:
        return AcquisitionResult(
            text=text,
            confidence=DIRECT_TEXT_CONFIDENCE,
            method=TEXT_LAYER_METHOD,
            strategy="text-extraction",
            pages_total=page_count,
            providers_used=[TEXT_LAYER_METHOD],
        )

    scanned = density < SCANNED_DENSITY_THRESHOLD
    vision = _vision_over_pages(path, page_count, chain)
    if vision:
        if scanned:
            return AcquisitionResult(
                text=vision.joined(PAGE_SEPARATOR),
                confidence=round(vision.confidence, 1),
                method=vision.method,
                strategy="ai-vision",
                pages_total=page_count,
                images_processed=len(vision.texts),
                providers_used=list(dict.fromkeys(vision.methods)),
            )
        return AcquisitionResult(
            text=f"{text}{PDF_HYBRID_SEPARATOR}{vision.joined(PAGE_SEPARATOR)}",
            confidence=round(min(PDF_HYBRID_CONFIDENCE_CAP, vision.confidence), 1),
            method=f"{TEXT_LAYER_METHOD}+{vision.method}",
            strategy="hybrid",
            pages_total=page_count,
            images_processed=len(vision.texts),
            providers_used=[TEXT_LAYER_METHOD, *dict.fromkeys(vision.methods)],
        )

    if len(text) < MIN_PROVIDER_TEXT_CHARS:
        raise AcquisitionError(f"No text could be extracted from {path.name}")
    fallback = PDF_SCANNED_FALLBACK_CONFIDENCE if scanned else PDF_HYBRID_FALLBACK_CONFIDENCE
    logger.warning("Vision failed for %s; using text layer only (confidence %.0f)", path.name, fallback)
    return AcquisitionResult(
        text=text,
        confidence=fallback,
        method=TEXT_LAYER_METHOD,
        strategy="text-extraction",
        pages_total=page_count,
        providers_used=[TEXT_LAYER_METHOD],
    )


# ---------------------------------------------------------------------------
# DOCX
# ---------------------------------------------------------------------------
def _vision_over_images(
    images: list[bytes], chain: Sequence[VisionProvider] | None,
) -> _VisionPass:
    vision = _VisionPass()
    total = len(images)
    for index, blob in enumerate(images, start=1):
        try:
            image = load_image(blob)
            outcome = extract_with_fallback(image, docx_image_prompt(index, total), chain=chain)
        except AcquisitionError as exc:
            logger.warning("No vision text for embedded image %d/%d: %s", index, total, exc)
            continue
        vision.texts.append(outcome.text)
        vision.confidences.append(outcome.confidence)
        vision.methods.append(outcome.method)
    return vision


def _acquire_docx(path: Path, chain: Sequence[VisionProvider] | None) -> AcquisitionResult:
    text = docx_text.extract_docx_text(path).strip()
    images = docx_text.extract_docx_images(path)
    has_text = len(text) > DOCX_TEXT_MIN_CHARS
    logger.info("DOCX %s: %d chars of text, %d embedded image(s)", path.name, len(text), len(images))

    if images:
        vision = _vision_over_images(images, chain)
        if vision and has_text:
            return AcquisitionResult(
                text=f"{text}{DOCX_HYBRID_SEPARATOR}{vision.joined(IMAGE_SEPARATOR)}",
                confidence=DOCX_HYBRID_CONFIDENCE,
                method=f"{DOCX_TEXT_METHOD}+{vision.method}",
                strategy="hybrid",
                images_processed=len(vision.texts),
                providers_used=[DOCX_TEXT_METHOD, *dict.fromkeys(vision.methods)],
            )
        if vision:
            return AcquisitionResult(
                text=vision.joined(IMAGE_SEPARATOR),
                confidence=round(vision.confidence, 1),
                method=vision.method,
                strategy="ai-vision",
                images_processed=len(vision.texts),
                providers_used=list(dict.fromkeys(vision.methods)),
            )
        logger.warning("Vision failed for every image in %s; using document text only", path.name)
        confidence = DOCX_TEXT_FALLBACK_CONFIDENCE if has_text else DOCX_SHORT_TEXT_FALLBACK_CONFIDENCE
    else:
        confidence = DIRECT_TEXT_CONFIDENCE if has_text else DOCX_SHORT_TEXT_CONFIDENCE

    if len(text) < MIN_PROVIDER_TEXT_CHARS:
        raise InsufficientTextError(f"No text could be extracted from {path.name}")
    return AcquisitionResult(
        text=text,
        confidence=confidence,
        method=DOCX_TEXT_METHOD,
        strategy="text-extraction",
        providers_used=[DOCX_TEXT_METHOD],
    )
