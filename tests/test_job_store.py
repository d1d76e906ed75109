"""Tests for timetable_pipeline.job_store."""

from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from timetable_pipeline.job_store import FileJobStore, InMemoryJobStore, build_store


class TestInMemoryJobStore(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryJobStore()

    def test_create_and_get(self) -> None:
        job = self.store.create("/tmp/a.pdf", "application/pdf", filename="a.pdf", teacher_name="Mr. Lee")
        got = self.store.get(job.job_id)
        self.assertEqual(got.state, "pending")
        self.assertEqual(got.progress, 0)
        self.assertEqual(got.teacher_name, "Mr. Lee")
        self.assertIsNone(self.store.get("missing"))

    def test_get_returns_snapshot(self) -> None:
        job = self.store.create("/tmp/a.pdf", "application/pdf")
        snapshot = self.store.get(job.job_id)
        snapshot.state = "failed"
        self.assertEqual(self.store.get(job.job_id).state, "pending")

    def test_progress_is_monotonic_and_capped(self) -> None:
        job = self.store.create("/tmp/a.pdf", "application/pdf")
        self.store.update(job.job_id, progress=60)
        self.store.update(job.job_id, progress=10)
        self.assertEqual(self.store.get(job.job_id).progress, 60)
        self.store.update(job.job_id, progress=250)
        self.assertEqual(self.store.get(job.job_id).progress, 100)

    def test_unknown_field_rejected(self) -> None:
        job = self.store.create("/tmp/a.pdf", "application/pdf")
        with self.assertRaises(AttributeError):
            self.store.update(job.job_id, colour="blue")
        self.assertIsNone(self.store.update("missing", state="failed"))

    def test_list_and_unfinished(self) -> None:
        a = self.store.create("/tmp/a.pdf", "application/pdf")
        b = self.store.create("/tmp/b.pdf", "application/pdf")
        self.store.update(a.job_id, state="completed", progress=100)
        self.assertEqual([j["job_id"] for j in self.store.list_jobs("completed")], [a.job_id])
        self.assertEqual(len(self.store.list_jobs()), 2)
        self.assertNotIn("result", self.store.list_jobs()[0])
        self.assertEqual([r.job_id for r in self.store.unfinished()], [b.job_id])

    def test_purge_uses_separate_retention(self) -> None:
        store = InMemoryJobStore(completed_retention_sec=10, failed_retention_sec=100)
        done = store.create("/tmp/a.pdf", "application/pdf")
        failed = store.create("/tmp/b.pdf", "application/pdf")
        pending = store.create("/tmp/c.pdf", "application/pdf")
        store.update(done.job_id, state="completed")
        store.update(failed.job_id, state="failed")
        now = store.get(done.job_id).updated_at + 50

        self.assertEqual(store.purge_expired(now=now), 1)
        self.assertIsNone(store.get(done.job_id))
        self.assertIsNotNone(store.get(failed.job_id))
        self.assertIsNotNone(store.get(pending.job_id))


class TestFileJobStore(unittest.TestCase):
    def test_survives_restart(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = FileJobStore(tmp)
            job = store.create("/tmp/a.pdf", "application/pdf", filename="a.pdf")
            store.update(job.job_id, state="processing", progress=60, attempts_made=1)
            self.assertTrue((Path(tmp) / f"{job.job_id}.json").exists())

            reloaded = FileJobStore(tmp)
            record = reloaded.get(job.job_id)
            self.assertEqual(record.state, "processing")
            self.assertEqual(record.progress, 60)
            self.assertEqual([r.job_id for r in reloaded.unfinished()], [job.job_id])

    def test_purge_removes_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = FileJobStore(tmp, completed_retention_sec=0)
            job = store.create("/tmp/a.pdf", "application/pdf")
            store.update(job.job_id, state="completed")
            store.purge_expired(now=store.get(job.job_id).updated_at + 1)
            self.assertFalse((Path(tmp) / f"{job.job_id}.json").exists())

    def test_unreadable_file_skipped(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            (Path(tmp) / "broken.json").write_text("{not json")
            (Path(tmp) / "other.json").write_text(json.dumps({"unexpected": 1}))
            self.assertEqual(len(FileJobStore(tmp)), 0)

    def test_build_store(self) -> None:
        self.assertIsInstance(build_store(None), InMemoryJobStore)
        with tempfile.TemporaryDirectory() as tmp:
            self.assertIsInstance(build_store(tmp), FileJobStore)


if __name__ == "__main__":
    unittest.main()
