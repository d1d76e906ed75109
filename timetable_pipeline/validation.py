"""Semantic validation of an extracted timetable.

Duplicates are found by embedding a descriptive sentence per block into a
job-local vector store; conflicts, gaps and statistics are plain interval
arithmetic. Missing embeddings degrade the analysis instead of failing it.
"""

from __future__ import annotations

import logging
from itertools import combinations
from typing import Iterable, Protocol

from .config import DUPLICATE_SIMILARITY_THRESHOLD, GAP_DAYS, GAP_THRESHOLD_MINUTES
from .normalize import calculate_confidence, format_minutes
from .schema import (
    DAYS_OF_WEEK,
    ConflictPair,
    DuplicatePair,
    ScheduleGap,
    ScheduleStatistics,
    SemanticInsights,
    TimeBlock,
    TimetableDocument,
)
from .utils import EmbeddingUnavailableError
from .vector_store import InMemoryVectorStore

logger = logging.getLogger(__name__)

DUPLICATE_NEIGHBORS = 3
OVERLAP_REASON = "Time overlap detected"


class Embedder(Protocol):
    def is_available(self) -> bool: ...

    def embed(self, texts: list[str]) -> list[list[float]]: ...


# ---------------------------------------------------------------------------
# Duplicates
# ---------------------------------------------------------------------------
def semantic_text(teacher_name: str, block: TimeBlock) -> str:
    """Sentence-like rendering of one block for embedding."""
    class_label = " ".join(p for p in (block.grade, block.section) if p) or "Not specified"
    return "\n".join([
        f"Teacher: {teacher_name}",
        f"Day: {block.day_of_week}",
        f"Time: {block.start_time} to {block.end_time}",
        f"Subject: {block.subject}",
        f"Location: {block.classroom or 'Not specified'}",
        f"Class: {class_label}",
        f"Notes: {block.notes or 'None'}",
    ])


def detect_duplicates(
    document: TimetableDocument,
    embedder: Embedder,
    threshold: float = DUPLICATE_SIMILARITY_THRESHOLD,
    neighbors: int = DUPLICATE_NEIGHBORS,
) -> list[DuplicatePair]:
    """Pairs of blocks whose embeddings are more similar than *threshold*.

    Each block is compared with its nearest neighbors only; a pair is reported
    once, from the lower index. Raises EmbeddingUnavailableError.
    """
    blocks = document.time_blocks
    if len(blocks) < 2:
        return []
    vectors = embedder.embed([semantic_text(document.teacher_name, b) for b in blocks])
    if len(vectors) != len(blocks):
        raise EmbeddingUnavailableError(
            f"Expected {len(blocks)} embeddings, got {len(vectors)}"
        )
    store = InMemoryVectorStore()
    for index, vector in enumerate(vectors):
        store.add(index, vector)

    pairs: list[DuplicatePair] = []
    for index, vector in enumerate(vectors):
        for other, score in store.search(vector, k=neighbors):
            if other <= index:
                continue
            if score > threshold:
                pairs.append(DuplicatePair(index_a=index, index_b=other, similarity=round(score, 4)))
    return pairs


# ---------------------------------------------------------------------------
# Conflicts / gaps / statistics
# ---------------------------------------------------------------------------
def detect_conflicts(blocks: list[TimeBlock]) -> list[ConflictPair]:
    """Same-day pairs whose intervals overlap; touching intervals do not."""
    by_day: dict[str, list[int]] = {}
    for index, block in enumerate(blocks):
        by_day.setdefault(block.day_of_week, []).append(index)

    conflicts: list[ConflictPair] = []
    for day in DAYS_OF_WEEK:
        for i, j in combinations(by_day.get(day, []), 2):
            a, b = blocks[i], blocks[j]
            if a.start_minutes < b.end_minutes and a.end_minutes > b.start_minutes:
                conflicts.append(
                    ConflictPair(index_a=i, index_b=j, day_of_week=day, reason=OVERLAP_REASON)
                )
    return conflicts


def _format_gap(minutes: int) -> str:
    return f"Large gap of {minutes // 60}h {minutes % 60}m"


def detect_gaps(
    blocks: list[TimeBlock],
    days: Iterable[str] = GAP_DAYS,
    threshold_minutes: int = GAP_THRESHOLD_MINUTES,
) -> list[ScheduleGap]:
    gaps: list[ScheduleGap] = []
    for day in days:
        day_blocks = sorted(
            (b for b in blocks if b.day_of_week == day), key=lambda b: b.start_minutes,
        )
        if not day_blocks:
            gaps.append(ScheduleGap(day_of_week=day, full_day=True, reason="Full day"))
            continue
        latest_end = day_blocks[0].end_minutes
        for block in day_blocks[1:]:
            gap = block.start_minutes - latest_end
            if gap > threshold_minutes:
                gaps.append(
                    ScheduleGap(
                        day_of_week=day,
                        start_time=format_minutes(latest_end),
                        end_time=block.start_time,
                        minutes=gap,
                        reason=_format_gap(gap),
                    )
                )
            latest_end = max(latest_end, block.end_minutes)
    return gaps


def _blocks_per_day(blocks: list[TimeBlock]) -> dict[str, int]:
    counts = {day: 0 for day in DAYS_OF_WEEK}
    for block in blocks:
        counts[block.day_of_week] += 1
    return {day: n for day, n in counts.items() if n}


def calculate_statistics(blocks: list[TimeBlock]) -> ScheduleStatistics:
    total_duration = sum(b.duration_minutes for b in blocks)
    return ScheduleStatistics(
        total_blocks=len(blocks),
        blocks_per_day=_blocks_per_day(blocks),
        average_block_duration=round(total_duration / len(blocks)) if blocks else 0,
        total_duration=total_duration,
    )


# ---------------------------------------------------------------------------
# Analysis entry points
# ---------------------------------------------------------------------------
def analyze_semantics(
    document: TimetableDocument,
    embedder: Embedder | None,
    threshold: float = DUPLICATE_SIMILARITY_THRESHOLD,
) -> SemanticInsights | None:
    """Full analysis, or None when embeddings are unavailable."""
    if embedder is None or not embedder.is_available():
        logger.warning("Embeddings unavailable; semantic analysis skipped")
        return None
    try:
        duplicates = detect_duplicates(document, embedder, threshold=threshold)
    except EmbeddingUnavailableError as exc:
        logger.warning("Embeddings failed; semantic analysis skipped: %s", exc)
        return None
    blocks = document.time_blocks
    return SemanticInsights(
        duplicates=duplicates,
        conflicts=detect_conflicts(blocks),
        gaps=detect_gaps(blocks),
        statistics=calculate_statistics(blocks),
        embeddings_available=True,
    )


def degraded_insights(document: TimetableDocument) -> SemanticInsights:
    """Insights used when embeddings are missing: counts only, no findings."""
    blocks = document.time_blocks
    return SemanticInsights(
        statistics=ScheduleStatistics(
            total_blocks=len(blocks), blocks_per_day=_blocks_per_day(blocks),
        ),
        embeddings_available=False,
    )


def analyze(document: TimetableDocument, embedder: Embedder | None) -> SemanticInsights:
    insights = analyze_semantics(document, embedder)
    if insights is None:
        return degraded_insights(document)
    logger.info(
        "Semantic analysis: %d block(s), %d duplicate(s), %d conflict(s), %d gap(s)",
        insights.statistics.total_blocks,
        len(insights.duplicates),
        len(insights.conflicts),
        len(insights.gaps),
    )
    return insights


# ---------------------------------------------------------------------------
# Refinement context / finalization
# ---------------------------------------------------------------------------
def _describe_block(index: int, block: TimeBlock) -> str:
    extras = [
        p for p in (
            block.classroom,
            " ".join(x for x in (block.grade, block.section) if x),
            block.notes,
        ) if p
    ]
    tail = f" | {' | '.join(extras)}" if extras else ""
    return (
        f"[{index}] {block.day_of_week} {block.start_time}-{block.end_time} "
        f"{block.subject}{tail} (confidence {block.confidence}%)"
    )


def build_refinement_context(
    document: TimetableDocument,
    insights: SemanticInsights,
    threshold: float = DUPLICATE_SIMILARITY_THRESHOLD,
) -> str:
    """Plain-text report of the current extraction and its problems."""
    blocks = document.time_blocks
    stats = insights.statistics
    lines = [
        f"CURRENT EXTRACTION (teacher: {document.teacher_name}, {len(blocks)} entries):",
        *(_describe_block(i, b) for i, b in enumerate(blocks)),
        "",
        "SUMMARY:",
        f"- Total blocks: {stats.total_blocks}",
        f"- Average duration: {stats.average_block_duration} minutes",
        f"- Total duration: {stats.total_duration} minutes",
        "- Blocks per day: "
        + (", ".join(f"{day}: {n}" for day, n in stats.blocks_per_day.items()) or "none"),
        "",
        f"DUPLICATES (similarity above {threshold:.0%}):",
    ]
    lines += [
        f"- [{d.index_a}] and [{d.index_b}] ({d.similarity:.1%} similar)"
        for d in insights.duplicates
    ] or ["- none"]
    lines += ["", "TIME CONFLICTS:"]
    lines += [
        f"- [{c.index_a}] and [{c.index_b}] on {c.day_of_week}: {c.reason}"
        for c in insights.conflicts
    ] or ["- none"]
    lines += ["", "SCHEDULE GAPS:"]
    lines += [
        f"- {g.day_of_week}: {g.reason}" if g.full_day
        else f"- {g.day_of_week} {g.start_time}-{g.end_time}: {g.reason}"
        for g in insights.gaps
    ] or ["- none"]
    return "\n".join(lines)


def _completeness(block: TimeBlock) -> tuple[int, int]:
    filled = sum(1 for v in (block.classroom, block.grade, block.section, block.notes) if v)
    return block.confidence, filled


def finalize_document(document: TimetableDocument) -> TimetableDocument:
    """Enforce document invariants on the accepted result.

    Blocks are ordered by day and time; exact duplicates (same day, start,
    end and subject) collapse to the most complete one; any overlap left is
    recorded in ``accepted_conflicts``.
    """
    kept: dict[tuple[str, str, str, str], TimeBlock] = {}
    for block in document.time_blocks:
        key = block.identity()
        current = kept.get(key)
        if current is None or _completeness(block) > _completeness(current):
            kept[key] = block
    collapsed = len(document.time_blocks) - len(kept)
    if collapsed:
        logger.info("Collapsed %d exact duplicate block(s)", collapsed)

    blocks = sorted(
        kept.values(),
        key=lambda b: (DAYS_OF_WEEK.index(b.day_of_week), b.start_minutes, b.end_minutes),
    )
    conflicts = detect_conflicts(blocks)
    if conflicts:
        logger.warning("%d time conflict(s) remain after refinement", len(conflicts))
    return document.model_copy(
        update={
            "time_blocks": blocks,
            "confidence": calculate_confidence(blocks),
            "accepted_conflicts": conflicts,
        }
    )
