"""Shared test doubles: embedders and block/document builders."""

from __future__ import annotations

import math
import re
import zlib

from timetable_pipeline.schema import (
    AcquisitionResult,
    PipelineResult,
    TimeBlock,
    TimetableDocument,
)
from timetable_pipeline.utils import EmbeddingUnavailableError


class StaticEmbedder:
    """Returns preset vectors in order."""

    def __init__(self, vectors: list[list[float]], available: bool = True) -> None:
        self.vectors = vectors
        self.available = available
        self.calls: list[list[str]] = []

    def is_available(self) -> bool:
        return self.available

    def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [list(v) for v in self.vectors[: len(texts)]]


class BagOfWordsEmbedder:
    """Deterministic hashed word-count vectors; identical texts score 1.0."""

    def __init__(self, dims: int = 128, available: bool = True, fail: bool = False) -> None:
        self.dims = dims
        self.available = available
        self.fail = fail
        self.calls: list[list[str]] = []

    def is_available(self) -> bool:
        return self.available

    def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail:
            raise EmbeddingUnavailableError("embedding backend down")
        vectors = []
        for text in texts:
            vec = [0.0] * self.dims
            for word in re.findall(r"\w+", text.lower()):
                vec[zlib.crc32(word.encode()) % self.dims] += 1.0
            vectors.append(vec)
        return vectors


def unit_vector_with_similarity(similarity: float) -> list[float]:
    """2-d unit vector whose cosine with [1, 0] equals *similarity*."""
    return [similarity, math.sqrt(1.0 - similarity * similarity)]


def make_block(
    day: str = "MONDAY",
    start: str = "09:00",
    end: str = "10:00",
    subject: str = "Mathematics",
    **extra,
) -> TimeBlock:
    return TimeBlock(day_of_week=day, start_time=start, end_time=end, subject=subject, **extra)


def make_document(blocks: list[TimeBlock] | None = None, teacher: str = "Ms. Sarah Johnson") -> TimetableDocument:
    return TimetableDocument(teacher_name=teacher, time_blocks=blocks or [make_block()])


def make_pipeline_result(document: TimetableDocument | None = None) -> PipelineResult:
    document = document or make_document()
    return PipelineResult(
        document=document,
        acquisition_method="pdf-text",
        acquisition_strategy="text-extraction",
        acquisition_confidence=95.0,
        raw_text_chars=120,
    )


def make_acquisition(text: str = "MONDAY 09:00-10:00 Maths Rm 101") -> AcquisitionResult:
    return AcquisitionResult(
        text=text,
        confidence=95.0,
        method="pdf-text",
        strategy="text-extraction",
        providers_used=["pdf-text"],
    )
