"""FastAPI adapter over the worker pool: upload a timetable, poll its job."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.responses import JSONResponse

from .config import (
    DUPLICATE_SIMILARITY_THRESHOLD,
    GAP_THRESHOLD_MINUTES,
    JOB_MAX_ATTEMPTS,
    MAX_FILE_SIZE_BYTES,
    UPLOAD_CHUNK_SIZE,
    VISION_PROVIDERS,
    WORKER_CONCURRENCY,
    configure_logging,
    log_startup_config,
)
from .utils import SUPPORTED_MEDIA_TYPES, JobShutdownError, guess_media_type
from .worker import get_default_pool, shutdown_default_pool

app = FastAPI(title="Timetable Extraction Pipeline")

UPLOAD_DIR = os.environ.get("UPLOAD_DIR", "").strip() or None


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------
@app.on_event("startup")
def _startup() -> None:
    configure_logging()
    log_startup_config()
    get_default_pool()


@app.on_event("shutdown")
def _shutdown() -> None:
    shutdown_default_pool()


# ---------------------------------------------------------------------------
# Global error handler
# ---------------------------------------------------------------------------
@app.exception_handler(Exception)
async def _unhandled_exception_handler(request, exc: Exception):  # noqa: ARG001
    if isinstance(exc, HTTPException):
        raise exc
    return JSONResponse(
        status_code=500,
        content={"detail": str(exc) or "Internal server error"},
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _resolve_media_type(file: UploadFile) -> str:
    declared = (file.content_type or "").split(";")[0].strip().lower()
    if declared in SUPPORTED_MEDIA_TYPES:
        return declared
    guessed = guess_media_type(file.filename or "")
    if guessed is None:
        raise HTTPException(
            status_code=415,
            detail=f"Unsupported file type {declared or 'unknown'!r}; upload PNG, JPEG, PDF or DOCX.",
        )
    return guessed


async def _stream_upload_to_temp(file: UploadFile) -> str:
    """Stream *file* to a temp file in chunks; enforce size limit. Returns path."""
    if not file.filename:
        raise HTTPException(status_code=400, detail="No file provided.")
    suffix = Path(file.filename).suffix.lower()
    total = 0
    tmp = tempfile.NamedTemporaryFile(delete=False, suffix=suffix, dir=UPLOAD_DIR)
    try:
        while True:
            chunk = await file.read(UPLOAD_CHUNK_SIZE)
            if not chunk:
                break
            total += len(chunk)
            if total > MAX_FILE_SIZE_BYTES:
                raise HTTPException(
                    status_code=413,
                    detail=f"File too large (limit {MAX_FILE_SIZE_BYTES // (1024*1024)} MB).",
                )
            tmp.write(chunk)
        tmp.flush()
    except Exception:
        tmp.close()
        os.unlink(tmp.name)
        raise
    finally:
        tmp.close()
    if total == 0:
        os.unlink(tmp.name)
        raise HTTPException(status_code=400, detail="Uploaded file is empty.")
    return tmp.name


# ---------------------------------------------------------------------------
# Health / config
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/api/config")
async def api_config():
    """Expose the limits and thresholds the pipeline runs with."""
    return {
        "max_file_size_bytes": MAX_FILE_SIZE_BYTES,
        "supported_media_types": sorted(SUPPORTED_MEDIA_TYPES),
        "worker_concurrency": WORKER_CONCURRENCY,
        "max_attempts": JOB_MAX_ATTEMPTS,
        "vision_providers": list(VISION_PROVIDERS),
        "duplicate_similarity_threshold": DUPLICATE_SIMILARITY_THRESHOLD,
        "gap_threshold_minutes": GAP_THRESHOLD_MINUTES,
    }


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------
@app.post("/api/timetables", status_code=202)
async def upload_timetable(
    file: UploadFile = File(...),
    teacher_name: str | None = Form(None),
):
    """Accept a timetable and return 202 + job_id. Poll /api/jobs/{job_id}."""
    media_type = _resolve_media_type(file)
    temp_path = await _stream_upload_to_temp(file)
    try:
        job_id = get_default_pool().submit(
            temp_path, media_type, filename=file.filename, teacher_name=teacher_name,
        )
    except JobShutdownError as exc:
        os.unlink(temp_path)
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return {"job_id": job_id, "status": "accepted"}


@app.get("/api/jobs")
async def list_jobs(state: str | None = None):
    return {"jobs": get_default_pool().store.list_jobs(state)}


@app.get("/api/jobs/{job_id}")
async def job_status(job_id: str):
    """Poll job status. Returns the result when completed, the error when failed."""
    status = get_default_pool().status(job_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Job not found.")
    return status
