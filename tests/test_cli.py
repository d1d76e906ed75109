"""Tests for timetable_pipeline.cli (pipeline mocked)."""

from __future__ import annotations

import io
import json
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest.mock import MagicMock, patch

from timetable_pipeline.cli import build_parser, main
from timetable_pipeline.utils import AcquisitionError

from fakes import make_pipeline_result


class TestParser(unittest.TestCase):
    def test_defaults(self) -> None:
        args = build_parser().parse_args(["week.pdf"])
        self.assertEqual(args.file_path, "week.pdf")
        self.assertIsNone(args.media_type)
        self.assertFalse(args.document_only)


@patch("timetable_pipeline.cli.configure_logging")
@patch("timetable_pipeline.cli.process_document")
class TestMain(unittest.TestCase):
    def test_prints_result(self, mock_process: MagicMock, _logging: MagicMock) -> None:
        mock_process.return_value = make_pipeline_result()
        out = io.StringIO()
        with redirect_stdout(out):
            code = main(["week.pdf", "--teacher", "Ms. Sarah Johnson", "--providers", "anthropic"])
        self.assertEqual(code, 0)
        payload = json.loads(out.getvalue())
        self.assertEqual(payload["acquisition_method"], "pdf-text")
        args, kwargs = mock_process.call_args
        self.assertEqual(args[1], "application/pdf")
        self.assertEqual(kwargs["teacher_hint"], "Ms. Sarah Johnson")
        self.assertEqual([p.name for p in kwargs["chain"]], ["anthropic-vision", "tesseract"])

    def test_document_only_to_file(self, mock_process: MagicMock, _logging: MagicMock) -> None:
        mock_process.return_value = make_pipeline_result()
        with tempfile.TemporaryDirectory() as tmp:
            target = Path(tmp) / "out.json"
            self.assertEqual(main(["week.png", "--document-only", "--output", str(target)]), 0)
            payload = json.loads(target.read_text())
        self.assertEqual(payload["teacher_name"], "Ms. Sarah Johnson")
        self.assertNotIn("acquisition_method", payload)

    def test_unknown_suffix(self, mock_process: MagicMock, _logging: MagicMock) -> None:
        err = io.StringIO()
        with redirect_stderr(err):
            self.assertEqual(main(["notes.txt"]), 2)
        mock_process.assert_not_called()

    def test_pipeline_error(self, mock_process: MagicMock, _logging: MagicMock) -> None:
        mock_process.side_effect = AcquisitionError("All vision providers failed")
        err = io.StringIO()
        with redirect_stderr(err):
            self.assertEqual(main(["week.png"]), 1)
        self.assertIn("AcquisitionError: All vision providers failed", err.getvalue())


if __name__ == "__main__":
    unittest.main()
