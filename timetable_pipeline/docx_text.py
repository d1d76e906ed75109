"""Word (.docx) text and embedded image extraction using python-docx."""

from __future__ import annotations

import logging
from pathlib import Path

import docx
from docx.opc.constants import RELATIONSHIP_TYPE as RT
from docx.opc.exceptions import PackageNotFoundError
from docx.oxml.ns import qn
from docx.table import Table
from docx.text.paragraph import Paragraph

from .utils import FileValidationError

logger = logging.getLogger(__name__)

# Raster formats the vision providers accept.
DOCX_IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".bmp")


def _open(docx_path: str | Path):
    try:
        return docx.Document(str(docx_path))
    except (PackageNotFoundError, KeyError, ValueError) as exc:
        raise FileValidationError(f"Cannot open DOCX {docx_path}: {exc}") from exc


def _table_lines(table: Table) -> list[str]:
    lines: list[str] = []
    for row in table.rows:
        cells: list[str] = []
        for cell in row.cells:
            text = " ".join(cell.text.split())
            # Merged cells repeat the same text once per grid column.
            if cells and cells[-1] == text:
                continue
            cells.append(text)
        if any(cells):
            lines.append(" | ".join(cells))
    return lines


def extract_docx_text(docx_path: str | Path) -> str:
    """Paragraph and table text in document order; table rows as ``a | b | c``."""
    document = _open(docx_path)
    lines: list[str] = []
    for child in document.element.body.iterchildren():
        if child.tag == qn("w:p"):
            text = Paragraph(child, document).text.strip()
            if text:
                lines.append(text)
        elif child.tag == qn("w:tbl"):
            lines.extend(_table_lines(Table(child, document)))
    return "\n".join(lines)


def extract_docx_images(docx_path: str | Path) -> list[bytes]:
    """Raw bytes of raster images embedded in the document, by part name."""
    document = _open(docx_path)
    parts: dict[str, bytes] = {}
    for rel in document.part.rels.values():
        if rel.is_external or rel.reltype != RT.IMAGE:
            continue
        partname = str(rel.target_part.partname)
        if not partname.lower().endswith(DOCX_IMAGE_EXTENSIONS):
            logger.debug("Skipping unsupported embedded image %s", partname)
            continue
        parts[partname] = rel.target_part.blob
    return [parts[name] for name in sorted(parts)]
