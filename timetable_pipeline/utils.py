"""Utility helpers and the exception hierarchy for the timetable pipeline."""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Iterable


class PipelineError(Exception):
    """Base exception for pipeline errors."""


class FileValidationError(PipelineError):
    """Raised when an input file is missing or unreadable."""


class UnsupportedMediaTypeError(PipelineError):
    """Raised when a declared media type has no acquisition strategy."""


class AcquisitionError(PipelineError):
    """Raised when no text could be acquired from a document."""


class ProviderUnavailableError(AcquisitionError):
    """Raised when a vision/OCR provider is unconfigured or unreachable."""


class InsufficientTextError(AcquisitionError):
    """Raised when a provider returns too little text to be useful."""


class MissingDependencyError(AcquisitionError):
    """Raised when required system dependencies are missing."""


class StructuringError(PipelineError):
    """Raised when the language model reply cannot be turned into a timetable."""


class NoValidEntriesError(StructuringError):
    """Raised when normalization leaves zero valid time blocks."""


class EmbeddingUnavailableError(PipelineError):
    """Raised when embeddings cannot be computed."""


class JobShutdownError(PipelineError):
    """Raised for jobs still outstanding when the worker pool shuts down."""


IMAGE_MEDIA_TYPES = frozenset({"image/png", "image/jpeg", "image/jpg"})
PDF_MEDIA_TYPE = "application/pdf"
DOCX_MEDIA_TYPE = (
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
)
SUPPORTED_MEDIA_TYPES = IMAGE_MEDIA_TYPES | {PDF_MEDIA_TYPE, DOCX_MEDIA_TYPE}

_SUFFIX_MEDIA_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".pdf": PDF_MEDIA_TYPE,
    ".docx": DOCX_MEDIA_TYPE,
}


def guess_media_type(path: str | Path) -> str | None:
    """Map a file suffix to a supported media type (None when unknown)."""

    return _SUFFIX_MEDIA_TYPES.get(Path(path).suffix.lower())


def normalize_text(text: str) -> str:
    """Normalize text for similarity comparison."""

    normalized = (
        text.replace("\ufb01", "fi")
        .replace("\ufb02", "fl")
        .replace("\r\n", "\n")
        .replace("\n", " ")
    )
    normalized = " ".join(normalized.split())
    return normalized.strip().lower()


def levenshtein(a: list[str] | str, b: list[str] | str) -> int:
    """Compute Levenshtein distance between sequences."""

    if a == b:
        return 0
    if len(a) == 0:
        return len(b)
    if len(b) == 0:
        return len(a)
    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        curr = [i]
        for j, cb in enumerate(b, start=1):
            insert = curr[j - 1] + 1
            delete = prev[j] + 1
            replace = prev[j - 1] + (0 if ca == cb else 1)
            curr.append(min(insert, delete, replace))
        prev = curr
    return prev[-1]


def similarity_ratio(reference: str, hypothesis: str) -> float | None:
    """Return word-level similarity (1 - WER) between two OCR readings."""

    ref_words = normalize_text(reference).split()
    hyp_words = normalize_text(hypothesis).split()
    if not ref_words:
        return None
    return 1.0 - levenshtein(ref_words, hyp_words) / max(len(ref_words), 1)


def strip_code_fences(content: str) -> str:
    """Remove a surrounding markdown code fence from a model reply."""

    content = content.strip()
    if content.startswith("```"):
        lines = content.split("\n")
        if lines[0].startswith("```"):
            lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        content = "\n".join(lines)
    return content.strip()


def check_binary_exists(binary_name: str) -> bool:
    """Return True if a binary is available on PATH."""

    return shutil.which(binary_name) is not None


def ensure_binaries(binaries: Iterable[str]) -> None:
    """Ensure all required binaries exist on PATH."""

    missing = [binary for binary in binaries if not check_binary_exists(binary)]
    if missing:
        raise MissingDependencyError(
            f"Missing required system binaries: {', '.join(missing)}"
        )


def validate_input_path(path: str | Path) -> Path:
    """Validate that an input document exists and is readable."""

    file_path = Path(path).expanduser().resolve()
    if not file_path.exists():
        raise FileValidationError(f"File not found: {file_path}")
    if not file_path.is_file():
        raise FileValidationError(f"Path is not a file: {file_path}")
    if not os.access(file_path, os.R_OK):
        raise FileValidationError(f"File is not readable: {file_path}")
    if file_path.stat().st_size == 0:
        raise FileValidationError(f"File is empty: {file_path}")
    return file_path
