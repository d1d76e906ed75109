"""End-to-end processing of one document: acquire, structure, analyze, refine."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, Sequence

from . import acquisition, structurer, validation
from .embeddings import default_embedder
from .provider_chain import VisionProvider
from .schema import PipelineResult
from .validation import Embedder

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]

# Progress reported after each stage; the worker reports 100 once persisted.
PROGRESS_STARTED = 10
PROGRESS_ACQUIRED = 60
PROGRESS_STRUCTURED = 70
PROGRESS_ANALYZED = 80
PROGRESS_FINALIZED = 90


def _noop_progress(_: int) -> None:
    return None


def process_document(
    file_path: str | Path,
    media_type: str,
    teacher_hint: str | None = None,
    progress: ProgressCallback | None = None,
    embedder: Embedder | None = None,
    chain: Sequence[VisionProvider] | None = None,
) -> PipelineResult:
    """Run every stage for one file and return the finalized result.

    Stage errors propagate (the worker retries the whole job); a failed
    refinement does not, the pre-refinement document is kept instead.
    """
    report = progress or _noop_progress
    embedder = embedder if embedder is not None else default_embedder()
    start = time.monotonic()

    report(PROGRESS_STARTED)
    acquired = acquisition.acquire(file_path, media_type, chain=chain)
    report(PROGRESS_ACQUIRED)

    document = structurer.structure(acquired.text, teacher_hint=teacher_hint, embedder=embedder)
    report(PROGRESS_STRUCTURED)

    insights = validation.analyze(document, embedder)
    report(PROGRESS_ANALYZED)

    refined = False
    refinement_error: str | None = None
    if insights.embeddings_available and insights.needs_refinement:
        try:
            document = structurer.refine(acquired.text, document, insights, embedder=embedder)
            refined = True
        except Exception as exc:
            refinement_error = f"{type(exc).__name__}: {exc}"
            logger.warning("Refinement failed; keeping first extraction: %s", refinement_error)
    elif not insights.embeddings_available:
        logger.info("Skipping refinement: semantic analysis unavailable")

    document = validation.finalize_document(document)
    report(PROGRESS_FINALIZED)

    elapsed_ms = int((time.monotonic() - start) * 1000)
    logger.info(
        "Processed %s: %d block(s), confidence %d, refined=%s, %d ms",
        Path(file_path).name, len(document.time_blocks), document.confidence, refined, elapsed_ms,
    )
    return PipelineResult(
        document=document,
        acquisition_method=acquired.method,
        acquisition_strategy=acquired.strategy,
        acquisition_confidence=acquired.confidence,
        raw_text_chars=len(acquired.text),
        insights=insights,
        refined=refined,
        refinement_error=refinement_error,
        processing_time_ms=elapsed_ms,
    )
