"""Text extraction for indexed files.

Plain-text formats are decoded as UTF-8 and PDFs go through PyMuPDF (fitz).
Anything else yields an empty string, which the indexer treats as "nothing
to index".
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

import fitz  # PyMuPDF

from folio.utils.text import normalize_whitespace

LOGGER = logging.getLogger(__name__)

TEXT_EXTENSIONS = frozenset({".txt", ".md", ".markdown", ".json", ".csv", ".rst", ".html", ".htm"})
PDF_EXTENSIONS = frozenset({".pdf"})


def iter_pdf_pages(path: Path) -> Iterator[str]:
    """Yield normalized text page by page."""
    doc = fitz.open(path)
    try:
        for index in range(len(doc)):
            try:
                text = doc[index].get_text() or ""
            except Exception as exc:  # pragma: no cover
                LOGGER.warning("Failed to read page %s in %s: %s", index, path, exc)
                continue
            normalized = normalize_whitespace(text.splitlines())
            if normalized:
                yield normalized
    finally:
        doc.close()


def read_pdf(path: Path) -> str:
    return "\n".join(iter_pdf_pages(path))


def read_content(path: Path) -> str:
    """Return the text of ``path``, or "" for unsupported file types.

    I/O and decoding errors propagate to the caller.
    """
    path = Path(path)
    extension = path.suffix.lower()
    if extension in TEXT_EXTENSIONS:
        return path.read_text(encoding="utf-8")
    if extension in PDF_EXTENSIONS:
        return read_pdf(path)
    LOGGER.warning("Unsupported file type: %s", extension or path.name)
    return ""
