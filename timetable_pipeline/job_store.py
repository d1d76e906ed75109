"""Job records for timetable extraction jobs.

Thread-safe. Each job goes through: pending -> processing -> completed | failed.

``InMemoryJobStore`` keeps records in a dict; ``FileJobStore`` additionally
writes every change to ``<dir>/<job_id>.json`` and reloads them on start so
jobs survive a restart. Terminal jobs are purged after a retention window
(completed and failed retained separately).
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
import uuid
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Literal

from .config import COMPLETED_RETENTION_SEC, FAILED_RETENTION_SEC

logger = logging.getLogger(__name__)

JobState = Literal["pending", "processing", "completed", "failed"]
TERMINAL_STATES: tuple[str, ...] = ("completed", "failed")


@dataclass
class JobRecord:
    job_id: str
    file_path: str
    media_type: str
    filename: str | None = None
    teacher_name: str | None = None
    state: JobState = "pending"
    progress: int = 0
    attempts_made: int = 0
    error: str | None = None
    result: dict[str, Any] | None = None
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JobRecord":
        known = {f for f in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in data.items() if k in known})


class JobStore:
    """Thread-safe in-memory registry; subclasses add durability hooks."""

    def __init__(
        self,
        completed_retention_sec: float = COMPLETED_RETENTION_SEC,
        failed_retention_sec: float = FAILED_RETENTION_SEC,
    ) -> None:
        self._lock = threading.Lock()
        self._jobs: dict[str, JobRecord] = {}
        self.completed_retention_sec = completed_retention_sec
        self.failed_retention_sec = failed_retention_sec

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def create(
        self,
        file_path: str,
        media_type: str,
        filename: str | None = None,
        teacher_name: str | None = None,
    ) -> JobRecord:
        self.purge_expired()
        record = JobRecord(
            job_id=uuid.uuid4().hex,
            file_path=str(file_path),
            media_type=media_type,
            filename=filename,
            teacher_name=teacher_name,
        )
        with self._lock:
            self._jobs[record.job_id] = record
            self._save(record)
        return replace(record)

    def get(self, job_id: str) -> JobRecord | None:
        """Return a snapshot of the record (mutating it changes nothing)."""
        with self._lock:
            record = self._jobs.get(job_id)
            return replace(record) if record is not None else None

    def update(self, job_id: str, **changes: Any) -> JobRecord | None:
        """Apply *changes* to a job; progress never moves backwards."""
        with self._lock:
            record = self._jobs.get(job_id)
            if record is None:
                return None
            if "progress" in changes:
                changes["progress"] = max(record.progress, min(100, int(changes["progress"])))
            for key, value in changes.items():
                if not hasattr(record, key) or key == "job_id":
                    raise AttributeError(f"Unknown job field: {key}")
                setattr(record, key, value)
            record.updated_at = time.time()
            self._save(record)
            return replace(record)

    def list_jobs(self, state: str | None = None) -> list[dict[str, Any]]:
        """Return job summaries (no result payloads), newest first."""
        with self._lock:
            jobs = [
                {
                    "job_id": r.job_id,
                    "state": r.state,
                    "progress": r.progress,
                    "attempts_made": r.attempts_made,
                    "filename": r.filename,
                    "created_at": r.created_at,
                    "updated_at": r.updated_at,
                }
                for r in self._jobs.values()
                if state is None or r.state == state
            ]
        return sorted(jobs, key=lambda j: j["created_at"], reverse=True)

    def unfinished(self) -> list[JobRecord]:
        """Non-terminal jobs, oldest first."""
        with self._lock:
            records = [replace(r) for r in self._jobs.values() if not r.is_terminal]
        return sorted(records, key=lambda r: r.created_at)

    def purge_expired(self, now: float | None = None) -> int:
        """Drop terminal jobs older than their retention window."""
        now = time.time() if now is None else now
        with self._lock:
            stale = [
                job_id
                for job_id, r in self._jobs.items()
                if (r.state == "completed" and now - r.updated_at > self.completed_retention_sec)
                or (r.state == "failed" and now - r.updated_at > self.failed_retention_sec)
            ]
            for job_id in stale:
                del self._jobs[job_id]
                self._delete(job_id)
        if stale:
            logger.info("Purged %d expired job(s)", len(stale))
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    # ------------------------------------------------------------------
    # Durability hooks (called under lock)
    # ------------------------------------------------------------------
    def _save(self, record: JobRecord) -> None:
        pass

    def _delete(self, job_id: str) -> None:
        pass


class InMemoryJobStore(JobStore):
    """Process-local store, for tests and single-process use."""


class FileJobStore(JobStore):
    """JSON-file-per-job store that survives restarts."""

    def __init__(self, persist_dir: str | Path, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._persist_dir = Path(persist_dir)
        self._persist_dir.mkdir(parents=True, exist_ok=True)
        self._load()

    def _path(self, job_id: str) -> Path:
        return self._persist_dir / f"{job_id}.json"

    def _load(self) -> None:
        for path in sorted(self._persist_dir.glob("*.json")):
            try:
                record = JobRecord.from_dict(json.loads(path.read_text()))
            except (OSError, ValueError, TypeError) as exc:
                logger.warning("Skipping unreadable job file %s: %s", path.name, exc)
                continue
            self._jobs[record.job_id] = record
        if self._jobs:
            logger.info("Loaded %d job(s) from %s", len(self._jobs), self._persist_dir)

    def _save(self, record: JobRecord) -> None:
        path = self._path(record.job_id)
        tmp = path.with_suffix(".json.tmp")
        try:
            tmp.write_text(json.dumps(record.to_dict(), default=str))
            os.replace(tmp, path)
        except OSError:
            logger.warning("Failed to persist job %s to disk", record.job_id, exc_info=True)

    def _delete(self, job_id: str) -> None:
        try:
            self._path(job_id).unlink(missing_ok=True)
        except OSError:
            logger.warning("Failed to delete job file for %s", job_id)


def build_store(persist_dir: str | None = None) -> JobStore:
    """File-backed store when a directory is configured, else in-memory."""
    if persist_dir:
        return FileJobStore(persist_dir)
    return InMemoryJobStore()
