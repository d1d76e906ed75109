#!/usr/bin/env python3
"""Submit several timetables to a worker pool and summarise the outcomes."""

from __future__ import annotations

import argparse
import json
from pathlib import Path

import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from timetable_pipeline.config import WORKER_CONCURRENCY, configure_logging
from timetable_pipeline.job_store import InMemoryJobStore
from timetable_pipeline.utils import guess_media_type
from timetable_pipeline.worker import WorkerPool


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Batch-extract timetables.")
    parser.add_argument("files", nargs="+", help="Image, PDF or DOCX files.")
    parser.add_argument("--workers", type=int, default=WORKER_CONCURRENCY)
    parser.add_argument("--timeout", type=float, default=600.0, help="Seconds to wait per job.")
    parser.add_argument("--output", type=str, default=None, metavar="FILE", help="Write full results to FILE.")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    configure_logging()
    pool = WorkerPool(store=InMemoryJobStore(), concurrency=args.workers, resume=False)

    job_ids: dict[str, str] = {}
    for path in args.files:
        media_type = guess_media_type(path)
        if media_type is None:
            print(f"Skipping {path}: unsupported file type", file=sys.stderr)
            continue
        job_ids[path] = pool.submit(path, media_type, filename=Path(path).name)

    rows = []
    full = {}
    for path, job_id in job_ids.items():
        status = pool.wait(job_id, timeout=args.timeout) or {}
        result = status.get("result") or {}
        document = result.get("document") or {}
        rows.append(
            {
                "file": Path(path).name,
                "state": status.get("state"),
                "attempts": status.get("attempts_made"),
                "blocks": len(document.get("time_blocks", [])),
                "confidence": document.get("confidence"),
                "method": result.get("acquisition_method"),
                "error": status.get("error"),
            }
        )
        full[path] = status
    pool.shutdown(grace_seconds=0)

    completed = sum(1 for r in rows if r["state"] == "completed")
    print(json.dumps({"completed": completed, "total": len(rows), "jobs": rows}, indent=2))
    if args.output:
        Path(args.output).write_text(json.dumps(full, indent=2, default=str))
    return 0 if completed == len(rows) else 1


if __name__ == "__main__":
    raise SystemExit(main())
