"""Tests for timetable_pipeline.api endpoints (worker pool mocked)."""

from __future__ import annotations

import io
import os
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient

from timetable_pipeline.utils import DOCX_MEDIA_TYPE, JobShutdownError


class TestHealthAndConfig(unittest.TestCase):
    def setUp(self) -> None:
        from timetable_pipeline.api import app
        self.client = TestClient(app, raise_server_exceptions=False)

    def test_health(self) -> None:
        r = self.client.get("/health")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json(), {"status": "ok"})

    def test_api_config(self) -> None:
        r = self.client.get("/api/config")
        self.assertEqual(r.status_code, 200)
        data = r.json()
        self.assertIn("application/pdf", data["supported_media_types"])
        self.assertIsInstance(data["max_file_size_bytes"], int)
        self.assertEqual(data["duplicate_similarity_threshold"], 0.95)


class _UploadCase(unittest.TestCase):
    def setUp(self) -> None:
        from timetable_pipeline.api import app
        self.client = TestClient(app, raise_server_exceptions=False)
        self.pool = MagicMock()
        patcher = patch("timetable_pipeline.api.get_default_pool", return_value=self.pool)
        patcher.start()
        self.addCleanup(patcher.stop)

    def _cleanup_submitted(self) -> str:
        path = self.pool.submit.call_args.args[0]
        self.addCleanup(lambda: Path(path).unlink(missing_ok=True))
        return path


class TestUpload(_UploadCase):
    def test_accepts_pdf(self) -> None:
        self.pool.submit.return_value = "job-123"
        r = self.client.post(
            "/api/timetables",
            files={"file": ("week.pdf", io.BytesIO(b"%PDF-1.4 data"), "application/pdf")},
            data={"teacher_name": "Ms. Sarah Johnson"},
        )
        self.assertEqual(r.status_code, 202)
        self.assertEqual(r.json(), {"job_id": "job-123", "status": "accepted"})

        path = self._cleanup_submitted()
        self.assertEqual(Path(path).read_bytes(), b"%PDF-1.4 data")
        args, kwargs = self.pool.submit.call_args
        self.assertEqual(args[1], "application/pdf")
        self.assertEqual(kwargs["filename"], "week.pdf")
        self.assertEqual(kwargs["teacher_name"], "Ms. Sarah Johnson")

    def test_media_type_guessed_from_suffix(self) -> None:
        self.pool.submit.return_value = "job-1"
        r = self.client.post(
            "/api/timetables",
            files={"file": ("week.docx", io.BytesIO(b"PK\x03\x04"), "application/octet-stream")},
        )
        self.assertEqual(r.status_code, 202)
        self._cleanup_submitted()
        self.assertEqual(self.pool.submit.call_args.args[1], DOCX_MEDIA_TYPE)

    def test_unsupported_type_returns_415(self) -> None:
        r = self.client.post(
            "/api/timetables",
            files={"file": ("notes.txt", io.BytesIO(b"hello"), "text/plain")},
        )
        self.assertEqual(r.status_code, 415)
        self.pool.submit.assert_not_called()

    @patch("timetable_pipeline.api.MAX_FILE_SIZE_BYTES", 100)
    def test_oversized_upload_returns_413(self) -> None:
        r = self.client.post(
            "/api/timetables",
            files={"file": ("big.png", io.BytesIO(b"x" * 200), "image/png")},
        )
        self.assertEqual(r.status_code, 413)
        self.assertIn("too large", r.json()["detail"].lower())
        self.pool.submit.assert_not_called()

    def test_empty_upload_returns_400(self) -> None:
        r = self.client.post(
            "/api/timetables",
            files={"file": ("empty.pdf", io.BytesIO(b""), "application/pdf")},
        )
        self.assertEqual(r.status_code, 400)
        self.assertIn("empty", r.json()["detail"].lower())

    def test_shutting_down_returns_503(self) -> None:
        self.pool.submit.side_effect = JobShutdownError("Worker pool is shutting down")
        r = self.client.post(
            "/api/timetables",
            files={"file": ("week.pdf", io.BytesIO(b"%PDF-1.4"), "application/pdf")},
        )
        self.assertEqual(r.status_code, 503)
        self.assertFalse(os.path.exists(self.pool.submit.call_args.args[0]))


class TestJobs(_UploadCase):
    def test_status(self) -> None:
        self.pool.status.return_value = {"job_id": "j1", "state": "processing", "progress": 60}
        r = self.client.get("/api/jobs/j1")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["progress"], 60)
        self.pool.status.assert_called_once_with("j1")

    def test_unknown_job_returns_404(self) -> None:
        self.pool.status.return_value = None
        r = self.client.get("/api/jobs/nope")
        self.assertEqual(r.status_code, 404)

    def test_list_jobs(self) -> None:
        self.pool.store.list_jobs.return_value = [{"job_id": "j1", "state": "failed"}]
        r = self.client.get("/api/jobs", params={"state": "failed"})
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["jobs"][0]["job_id"], "j1")
        self.pool.store.list_jobs.assert_called_once_with("failed")


if __name__ == "__main__":
    unittest.main()
