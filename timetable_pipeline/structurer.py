"""Turn raw timetable text into a validated TimetableDocument."""

from __future__ import annotations

import logging
import re
from typing import Any

from pydantic import ValidationError

from . import llm
from .config import CHUNK_TOP_K, CHUNKING_MIN_CHARS
from .normalize import calculate_confidence, validate_time_blocks
from .prompts import STRUCTURING_SYSTEM_PROMPT, build_structuring_prompt
from .schema import RawTimetable, SemanticInsights, TimetableDocument
from .utils import EmbeddingUnavailableError, NoValidEntriesError, StructuringError
from .validation import Embedder, build_refinement_context
from .vector_store import InMemoryVectorStore

logger = logging.getLogger(__name__)

CHUNK_QUERY = "timetable schedule teacher class time subject room grade day period"
LINES_PER_CHUNK = 10

# A chunk boundary is a line that starts with a day name or abbreviation.
_DAY_HEADER_RE = re.compile(
    r"^(?=[ \t|]*(?:mon|tue|tues|wed|weds|thu|thur|thurs|fri|sat|sun)"
    r"(?:day|nesday|sday|rsday|urday)?\b)",
    re.IGNORECASE | re.MULTILINE,
)


# ---------------------------------------------------------------------------
# Chunking
# ---------------------------------------------------------------------------
def chunk_text_semantically(text: str) -> list[str]:
    """Split text at day-of-week headers.

    Falls back to groups of ``LINES_PER_CHUNK`` non-empty lines, and to the
    whole text when neither split produces more than one chunk.
    """
    chunks = [c.strip() for c in _DAY_HEADER_RE.split(text) if c.strip()]
    if len(chunks) > 1:
        return chunks
    lines = [line for line in text.splitlines() if line.strip()]
    groups = [
        "\n".join(lines[i : i + LINES_PER_CHUNK])
        for i in range(0, len(lines), LINES_PER_CHUNK)
    ]
    if len(groups) > 1:
        return groups
    return [text.strip()] if text.strip() else []


def select_relevant_chunks(
    chunks: list[str],
    embedder: Embedder,
    top_k: int = CHUNK_TOP_K,
    query: str = CHUNK_QUERY,
) -> list[str]:
    """Top-k chunks by similarity to *query*, back in document order.

    The first chunk is always kept because it usually carries the teacher
    name and term metadata. Raises EmbeddingUnavailableError.
    """
    vectors = embedder.embed([query, *chunks])
    if len(vectors) != len(chunks) + 1:
        raise EmbeddingUnavailableError(
            f"Expected {len(chunks) + 1} embeddings, got {len(vectors)}"
        )
    store = InMemoryVectorStore()
    for index, vector in enumerate(vectors[1:]):
        store.add(index, vector)
    selected = {index for index, _ in store.search(vectors[0], k=top_k)}
    selected.add(0)
    return [chunks[i] for i in sorted(selected)]


def prepare_text(raw_text: str, embedder: Embedder | None) -> str:
    """Text sent to the model: the whole input, or its most relevant chunks."""
    if len(raw_text) <= CHUNKING_MIN_CHARS:
        return raw_text
    chunks = chunk_text_semantically(raw_text)
    if len(chunks) <= CHUNK_TOP_K:
        return raw_text
    if embedder is None or not embedder.is_available():
        logger.warning("Embeddings unavailable; sending full text (%d chars) to the model", len(raw_text))
        return raw_text
    try:
        selected = select_relevant_chunks(chunks, embedder)
    except EmbeddingUnavailableError as exc:
        logger.warning("Chunk selection failed; sending full text: %s", exc)
        return raw_text
    logger.info("Sending %d of %d chunk(s) to the model", len(selected), len(chunks))
    return "\n\n".join(selected)


# ---------------------------------------------------------------------------
# Structuring
# ---------------------------------------------------------------------------
def build_document(data: dict[str, Any], teacher_hint: str | None = None) -> TimetableDocument:
    """Validate a model reply and normalize it into a TimetableDocument."""
    try:
        raw = RawTimetable.model_validate(data)
    except ValidationError as exc:
        raise StructuringError(f"Model reply does not match the timetable schema: {exc}") from exc

    blocks = validate_time_blocks(raw.time_blocks)
    if not blocks:
        raise NoValidEntriesError(
            f"No valid time blocks among {len(raw.time_blocks)} extracted entries"
        )
    teacher = (raw.teacher_name or "").strip() or (teacher_hint or "").strip()
    if not teacher:
        raise StructuringError("Teacher name missing from extraction and no hint supplied")
    return TimetableDocument(
        teacher_name=teacher,
        time_blocks=blocks,
        academic_year=raw.academic_year,
        semester=raw.semester,
        confidence=calculate_confidence(blocks),
    )


def structure(
    raw_text: str,
    teacher_hint: str | None = None,
    embedder: Embedder | None = None,
    refinement_context: str | None = None,
) -> TimetableDocument:
    """Ask the language model for a timetable and normalize its answer.

    Raises StructuringError (including NoValidEntriesError).
    """
    if not raw_text.strip():
        raise StructuringError("No text to structure")
    text = prepare_text(raw_text, embedder)
    data = llm.complete_json(
        STRUCTURING_SYSTEM_PROMPT,
        build_structuring_prompt(text, teacher_hint, refinement_context),
    )
    document = build_document(data, teacher_hint)
    logger.info(
        "Structured %d block(s) for %s (confidence %d)",
        len(document.time_blocks), document.teacher_name, document.confidence,
    )
    return document


def refine(
    raw_text: str,
    document: TimetableDocument,
    insights: SemanticInsights,
    embedder: Embedder | None = None,
) -> TimetableDocument:
    """Re-run structuring with the analysis report as extra context."""
    context = build_refinement_context(document, insights)
    refined = structure(
        raw_text,
        teacher_hint=document.teacher_name,
        embedder=embedder,
        refinement_context=context,
    )
    logger.info(
        "Refinement: %d -> %d block(s)", len(document.time_blocks), len(refined.time_blocks),
    )
    return refined
