"""PDF text layer extraction (PyMuPDF) and page rendering (pdf2image)."""

from __future__ import annotations

from pathlib import Path

import fitz  # PyMuPDF
from pdf2image import convert_from_path
from pdf2image.exceptions import PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError
from PIL import Image

from .config import PDF_RENDER_DPI
from .utils import AcquisitionError, FileValidationError


def extract_native_text(pdf_path: str | Path) -> tuple[str, list[dict]]:
    """Extract embedded text from a PDF using PyMuPDF.

    Returns:
        (full_text, pages) where pages is a list of
        ``{"page_number": int, "text": str, "char_count": int}``.
    """
    try:
        doc = fitz.open(str(pdf_path))
    except RuntimeError as exc:
        raise FileValidationError(f"Cannot open PDF {pdf_path}: {exc}") from exc
    pages: list[dict] = []
    full_parts: list[str] = []
    try:
        for i, page in enumerate(doc):
            text = page.get_text()
            pages.append({
                "page_number": i + 1,
                "text": text,
                "char_count": len(text.strip()),
            })
            if text.strip():
                full_parts.append(text.strip())
    finally:
        doc.close()
    return "\n".join(full_parts), pages


def text_density(full_text: str, page_count: int) -> float:
    """Characters of stripped text per page."""
    return len(full_text.strip()) / max(page_count, 1)


def render_page(pdf_path: str | Path, page_number: int, dpi: int = PDF_RENDER_DPI) -> Image.Image:
    """Rasterize one 1-based page; pages are rendered one at a time to bound memory."""
    try:
        images = convert_from_path(
            str(pdf_path), dpi=dpi, first_page=page_number, last_page=page_number,
        )
    except (PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError) as exc:
        raise AcquisitionError(f"Failed to render page {page_number}: {exc}") from exc
    if not images:
        raise AcquisitionError(f"Page {page_number} rendered no image")
    return images[0].convert("RGB")
