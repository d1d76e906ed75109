"""Tests for timetable_pipeline.pdf_text."""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

import fitz
from pdf2image.exceptions import PDFInfoNotInstalledError
from PIL import Image

from timetable_pipeline.pdf_text import extract_native_text, render_page, text_density
from timetable_pipeline.utils import AcquisitionError, FileValidationError


class TestExtractNativeText(unittest.TestCase):
    def test_text_layer_per_page(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "week.pdf"
            doc = fitz.open()
            doc.new_page().insert_text((72, 72), "MONDAY 09:00 Mathematics")
            doc.new_page()
            doc.save(str(path))
            doc.close()

            text, pages = extract_native_text(path)

        self.assertIn("MONDAY 09:00 Mathematics", text)
        self.assertEqual([p["page_number"] for p in pages], [1, 2])
        self.assertEqual(pages[1]["char_count"], 0)

    def test_unreadable_pdf(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "broken.pdf"
            path.write_bytes(b"this is not a pdf")
            with self.assertRaises(FileValidationError):
                extract_native_text(path)

    def test_density(self) -> None:
        self.assertEqual(text_density("  abcd  ", 2), 2.0)
        self.assertEqual(text_density("abc", 0), 3.0)


class TestRenderPage(unittest.TestCase):
    @patch("timetable_pipeline.pdf_text.convert_from_path")
    def test_renders_single_page(self, mock_convert: MagicMock) -> None:
        mock_convert.return_value = [Image.new("L", (10, 10))]
        image = render_page("/tmp/week.pdf", 3, dpi=150)
        self.assertEqual(image.mode, "RGB")
        mock_convert.assert_called_once_with("/tmp/week.pdf", dpi=150, first_page=3, last_page=3)

    @patch("timetable_pipeline.pdf_text.convert_from_path", side_effect=PDFInfoNotInstalledError("no poppler"))
    def test_missing_poppler(self, _convert: MagicMock) -> None:
        with self.assertRaises(AcquisitionError):
            render_page("/tmp/week.pdf", 1)


if __name__ == "__main__":
    unittest.main()
