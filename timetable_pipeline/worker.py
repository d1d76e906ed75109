"""Background worker pool for timetable extraction jobs.

Uses a fixed-size ThreadPoolExecutor; each job runs every pipeline stage in
one worker thread. Job starts go through a sliding-window limiter, failed
jobs are retried as a whole with capped exponential backoff, and the last
error is kept on the record once attempts run out.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable

from .config import (
    JOB_BACKOFF_BASE_SEC,
    JOB_BACKOFF_MAX_SEC,
    JOB_MAX_ATTEMPTS,
    JOB_STORE_DIR,
    RATE_LIMIT_MAX_JOBS,
    RATE_LIMIT_WINDOW_SEC,
    SHUTDOWN_GRACE_SEC,
    WORKER_CONCURRENCY,
)
from .job_store import JobRecord, JobStore, build_store
from .pipeline import process_document
from .rate_limit import SlidingWindowLimiter
from .schema import PipelineResult, TimetableDocument
from .utils import FileValidationError, JobShutdownError, UnsupportedMediaTypeError

logger = logging.getLogger(__name__)

PersistCallback = Callable[[str, TimetableDocument], None]
Pipeline = Callable[..., PipelineResult]

# Retrying cannot fix these.
NON_RETRYABLE_ERRORS: tuple[type[Exception], ...] = (
    FileValidationError,
    UnsupportedMediaTypeError,
)

_LIMITER_POLL_SEC = 1.0


def backoff_delay(attempt: int, base: float = JOB_BACKOFF_BASE_SEC, cap: float = JOB_BACKOFF_MAX_SEC) -> float:
    """Delay before retrying after failed attempt number *attempt* (1-based)."""
    return min(cap, base * (2 ** (attempt - 1)))


def _format_error(exc: BaseException) -> str:
    return f"{type(exc).__name__}: {exc}"


class WorkerPool:
    """Runs extraction jobs with bounded concurrency and whole-job retries."""

    def __init__(
        self,
        store: JobStore | None = None,
        pipeline: Pipeline = process_document,
        persist: PersistCallback | None = None,
        concurrency: int = WORKER_CONCURRENCY,
        limiter: SlidingWindowLimiter | None = None,
        max_attempts: int = JOB_MAX_ATTEMPTS,
        backoff_base: float = JOB_BACKOFF_BASE_SEC,
        backoff_max: float = JOB_BACKOFF_MAX_SEC,
        sleep: Callable[[float], Any] | None = None,
        resume: bool = True,
    ) -> None:
        self.store = store if store is not None else build_store(JOB_STORE_DIR or None)
        self._pipeline = pipeline
        self._persist = persist
        self._limiter = limiter or SlidingWindowLimiter(RATE_LIMIT_MAX_JOBS, RATE_LIMIT_WINDOW_SEC)
        self.max_attempts = max(1, max_attempts)
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max
        self._stopping = threading.Event()
        # Backoff waits wake up early on shutdown unless a sleep is injected.
        self._sleep = sleep or self._stopping.wait
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, concurrency), thread_name_prefix="timetable-worker",
        )
        self._futures: dict[str, Future] = {}
        self._futures_lock = threading.Lock()
        self._accepting = True
        if resume:
            self._resume_unfinished()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def submit(
        self,
        file_path: str,
        media_type: str,
        filename: str | None = None,
        teacher_name: str | None = None,
    ) -> str:
        """Register a job and queue it; returns the job id immediately."""
        if not self._accepting:
            raise JobShutdownError("Worker pool is shutting down")
        record = self.store.create(file_path, media_type, filename=filename, teacher_name=teacher_name)
        self._schedule(record.job_id)
        logger.info("Queued job %s (%s, %s)", record.job_id, filename or file_path, media_type)
        return record.job_id

    def status(self, job_id: str) -> dict[str, Any] | None:
        """``{state, progress, attempts_made, error?, result?}`` or None if unknown."""
        record = self.store.get(job_id)
        if record is None:
            return None
        return job_status(record)

    def wait(self, job_id: str, timeout: float | None = None) -> dict[str, Any] | None:
        """Block until *job_id* finishes (or *timeout* passes); returns its status."""
        with self._futures_lock:
            future = self._futures.get(job_id)
        if future is not None:
            try:
                future.result(timeout=timeout)
            except (FutureTimeoutError, CancelledError):
                # Cancelled futures belong to jobs shutdown() already failed.
                pass
        return self.status(job_id)

    def shutdown(self, grace_seconds: float = SHUTDOWN_GRACE_SEC) -> None:
        """Stop accepting jobs, let running ones finish within the grace period,
        then cancel queued jobs and fail whatever is still unfinished."""
        self._accepting = False
        deadline = time.monotonic() + max(0.0, grace_seconds)
        with self._futures_lock:
            futures = dict(self._futures)
        for future in futures.values():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                future.result(timeout=remaining)
            except FutureTimeoutError:
                break
        self._stopping.set()
        self._executor.shutdown(wait=False, cancel_futures=True)

        for job_id in futures:
            record = self.store.get(job_id)
            if record is not None and not record.is_terminal:
                self.store.update(
                    job_id,
                    state="failed",
                    error=_format_error(JobShutdownError("Worker pool shut down before the job finished")),
                )
                logger.warning("Job %s marked failed at shutdown", job_id)
        logger.info("Worker pool shut down")

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------
    def _schedule(self, job_id: str) -> None:
        future = self._executor.submit(self._run, job_id)
        with self._futures_lock:
            self._futures[job_id] = future

    def _resume_unfinished(self) -> None:
        for record in self.store.unfinished():
            if record.attempts_made >= self.max_attempts:
                # Interrupted during its last attempt; nothing left to retry.
                self.store.update(
                    record.job_id,
                    state="failed",
                    error=record.error or _format_error(
                        JobShutdownError("Job was interrupted during its final attempt")
                    ),
                )
                logger.warning(
                    "Job %s failed on restart after %d attempt(s)", record.job_id, record.attempts_made,
                )
                continue
            logger.info("Resuming job %s after restart", record.job_id)
            self.store.update(record.job_id, state="pending")
            self._schedule(record.job_id)

    def _wait_for_slot(self) -> bool:
        while not self._limiter.acquire(timeout=_LIMITER_POLL_SEC):
            if self._stopping.is_set():
                return False
        return not self._stopping.is_set()

    def _run(self, job_id: str) -> None:
        """Execute the pipeline for one job, retrying on failure. Runs in a thread."""
        record = self.store.get(job_id)
        if record is None:
            return
        attempt = record.attempts_made
        while attempt < self.max_attempts:
            if not self._wait_for_slot():
                return
            attempt += 1
            self.store.update(job_id, state="processing", attempts_made=attempt)
            try:
                self._attempt(record)
                return
            except Exception as exc:
                error = _format_error(exc)
                self.store.update(job_id, error=error)
                if isinstance(exc, NON_RETRYABLE_ERRORS) or attempt >= self.max_attempts:
                    self.store.update(job_id, state="failed")
                    logger.exception("Job %s failed after %d attempt(s): %s", job_id, attempt, error)
                    return
                delay = backoff_delay(attempt, self._backoff_base, self._backoff_max)
                logger.warning(
                    "Job %s attempt %d/%d failed (%s); retrying in %.1fs",
                    job_id, attempt, self.max_attempts, error, delay,
                )
                self._sleep(delay)
                if self._stopping.is_set():
                    return

    def _attempt(self, record: JobRecord) -> None:
        job_id = record.job_id
        result = self._pipeline(
            record.file_path,
            record.media_type,
            teacher_hint=record.teacher_name,
            progress=lambda value: self.store.update(job_id, progress=value),
        )
        if self._stopping.is_set():
            # Already marked failed by shutdown().
            return
        if self._persist is not None:
            self._persist(job_id, result.document)
        self.store.update(
            job_id,
            state="completed",
            progress=100,
            error=None,
            result=result.model_dump(mode="json"),
        )
        logger.info("Job %s completed (%d block(s))", job_id, len(result.document.time_blocks))


def job_status(record: JobRecord) -> dict[str, Any]:
    status: dict[str, Any] = {
        "job_id": record.job_id,
        "state": record.state,
        "progress": record.progress,
        "attempts_made": record.attempts_made,
        "filename": record.filename,
    }
    if record.error is not None:
        status["error"] = record.error
    if record.state == "completed":
        status["result"] = record.result
    return status


# ---------------------------------------------------------------------------
# Module-level default pool used by the API and scripts
# ---------------------------------------------------------------------------
_default_pool: WorkerPool | None = None
_default_lock = threading.Lock()


def get_default_pool() -> WorkerPool:
    global _default_pool
    with _default_lock:
        if _default_pool is None:
            _default_pool = WorkerPool()
        return _default_pool


def submit_job(
    file_path: str,
    media_type: str,
    filename: str | None = None,
    teacher_name: str | None = None,
) -> str:
    return get_default_pool().submit(file_path, media_type, filename=filename, teacher_name=teacher_name)


def get_status(job_id: str) -> dict[str, Any] | None:
    return get_default_pool().status(job_id)


def shutdown_default_pool(grace_seconds: float = SHUTDOWN_GRACE_SEC) -> None:
    global _default_pool
    with _default_lock:
        pool, _default_pool = _default_pool, None
    if pool is not None:
        pool.shutdown(grace_seconds)
