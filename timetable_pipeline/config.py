"""Centralized configuration for the timetable extraction pipeline.

All env-driven settings live here so there is a single source of truth.
Import from ``timetable_pipeline.config`` in worker.py, acquisition.py, etc.
"""

from __future__ import annotations

import logging
import os
import sys


def _env_bool(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes")


def _env_int(name: str, default: int, lo: int = 1, hi: int = 10_000) -> int:
    try:
        return max(lo, min(hi, int(os.environ.get(name, str(default)))))
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float, lo: float = 0.0, hi: float = 1e9) -> float:
    try:
        return max(lo, min(hi, float(os.environ.get(name, str(default)))))
    except (TypeError, ValueError):
        return default


def _env_list(name: str, default: str) -> tuple[str, ...]:
    raw = os.environ.get(name, default)
    return tuple(item.strip().lower() for item in raw.split(",") if item.strip())


# ---------------------------------------------------------------------------
# Worker pool / queue
# ---------------------------------------------------------------------------
WORKER_CONCURRENCY: int = _env_int("WORKER_CONCURRENCY", default=3, hi=64)
RATE_LIMIT_MAX_JOBS: int = _env_int("RATE_LIMIT_MAX_JOBS", default=10, hi=10_000)
RATE_LIMIT_WINDOW_SEC: float = _env_float("RATE_LIMIT_WINDOW_SEC", default=60.0, lo=0.0, hi=86_400.0)
JOB_MAX_ATTEMPTS: int = _env_int("JOB_MAX_ATTEMPTS", default=3, hi=20)
JOB_BACKOFF_BASE_SEC: float = _env_float("JOB_BACKOFF_BASE_SEC", default=2.0, hi=600.0)
JOB_BACKOFF_MAX_SEC: float = _env_float("JOB_BACKOFF_MAX_SEC", default=30.0, hi=3600.0)
COMPLETED_RETENTION_SEC: int = _env_int(
    "COMPLETED_RETENTION_SEC", default=24 * 3600, hi=90 * 24 * 3600,
)
FAILED_RETENTION_SEC: int = _env_int(
    "FAILED_RETENTION_SEC", default=7 * 24 * 3600, hi=90 * 24 * 3600,
)
SHUTDOWN_GRACE_SEC: float = _env_float("SHUTDOWN_GRACE_SEC", default=30.0, hi=3600.0)
JOB_STORE_DIR: str = os.environ.get("JOB_STORE_DIR", "").strip()

# ---------------------------------------------------------------------------
# Text acquisition
# ---------------------------------------------------------------------------
VISION_PROVIDERS: tuple[str, ...] = _env_list("VISION_PROVIDERS", "openai,anthropic")
OPENAI_VISION_MODEL: str = os.environ.get("OPENAI_VISION_MODEL", "gpt-4o-mini")
ANTHROPIC_VISION_MODEL: str = os.environ.get("ANTHROPIC_VISION_MODEL", "claude-3-haiku-20240307")
PROVIDER_TIMEOUT_SEC: float = _env_float("PROVIDER_TIMEOUT_SEC", default=60.0, lo=1.0, hi=600.0)
MIN_PROVIDER_TEXT_CHARS: int = _env_int("MIN_PROVIDER_TEXT_CHARS", default=10, lo=0, hi=1000)
PDF_RENDER_DPI: int = _env_int("PDF_RENDER_DPI", default=200, lo=72, hi=600)
SCANNED_DENSITY_THRESHOLD: int = _env_int("SCANNED_DENSITY_THRESHOLD", default=50, lo=0)
HYBRID_DENSITY_THRESHOLD: int = _env_int("HYBRID_DENSITY_THRESHOLD", default=200, lo=0)
DOCX_TEXT_MIN_CHARS: int = _env_int("DOCX_TEXT_MIN_CHARS", default=50, lo=0)
OCR_LANG: str = os.environ.get("OCR_LANG", "eng")

# ---------------------------------------------------------------------------
# Structuring / semantic validation
# ---------------------------------------------------------------------------
STRUCTURING_MODEL: str = os.environ.get("STRUCTURING_MODEL", "gpt-4o-mini")
STRUCTURING_FALLBACK_MODEL: str = os.environ.get(
    "STRUCTURING_FALLBACK_MODEL", "claude-3-haiku-20240307",
)
STRUCTURING_MAX_RETRIES: int = _env_int("STRUCTURING_MAX_RETRIES", default=2, lo=0, hi=10)
EMBEDDING_MODEL: str = os.environ.get("EMBEDDING_MODEL", "text-embedding-3-small")
CHUNKING_MIN_CHARS: int = _env_int("CHUNKING_MIN_CHARS", default=2000, lo=0, hi=1_000_000)
CHUNK_TOP_K: int = _env_int("CHUNK_TOP_K", default=6, hi=100)
DUPLICATE_SIMILARITY_THRESHOLD: float = _env_float(
    "DUPLICATE_SIMILARITY_THRESHOLD", default=0.95, lo=0.0, hi=1.0,
)
GAP_THRESHOLD_MINUTES: int = _env_int("GAP_THRESHOLD_MINUTES", default=120, hi=24 * 60)
GAP_DAYS: tuple[str, ...] = tuple(
    d.upper() for d in _env_list("GAP_DAYS", "MONDAY,TUESDAY,WEDNESDAY,THURSDAY,FRIDAY")
)

# ---------------------------------------------------------------------------
# Upload limits (API adapter)
# ---------------------------------------------------------------------------
MAX_FILE_SIZE_BYTES: int = _env_int(
    "MAX_FILE_SIZE_BYTES", default=10 * 1024 * 1024, lo=1, hi=500 * 1024 * 1024,
)
UPLOAD_CHUNK_SIZE: int = 64 * 1024  # 64 KiB streaming chunks

LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO").strip().upper()
DEBUG_PIPELINE: bool = _env_bool("DEBUG_PIPELINE")


def configure_logging(level: str | None = None) -> None:
    """Attach a basic stderr handler to the root logger (idempotent)."""
    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if DEBUG_PIPELINE:
        logging.getLogger("timetable_pipeline").setLevel(logging.DEBUG)


def log_startup_config() -> None:
    """Print one startup line summarising active configuration."""
    msg = (
        f"Timetable pipeline config: WORKER_CONCURRENCY={WORKER_CONCURRENCY} "
        f"RATE_LIMIT={RATE_LIMIT_MAX_JOBS}/{RATE_LIMIT_WINDOW_SEC:g}s "
        f"JOB_MAX_ATTEMPTS={JOB_MAX_ATTEMPTS} JOB_BACKOFF_BASE_SEC={JOB_BACKOFF_BASE_SEC:g} "
        f"VISION_PROVIDERS={','.join(VISION_PROVIDERS) or '-'} "
        f"STRUCTURING_MODEL={STRUCTURING_MODEL} EMBEDDING_MODEL={EMBEDDING_MODEL} "
        f"DUPLICATE_SIMILARITY_THRESHOLD={DUPLICATE_SIMILARITY_THRESHOLD:g} "
        f"GAP_THRESHOLD_MINUTES={GAP_THRESHOLD_MINUTES} "
        f"MAX_FILE_SIZE_BYTES={MAX_FILE_SIZE_BYTES} "
        f"JOB_STORE_DIR={JOB_STORE_DIR or '-'}"
    )
    print(msg, flush=True)
    sys.stderr.write(msg + "\n")
    sys.stderr.flush()
