"""Tests for text extraction."""

from __future__ import annotations

import logging
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from folio.ingestion.reader import iter_pdf_pages, read_content, read_pdf


def _mock_pdf(mock_fitz: MagicMock, texts: list[str]) -> MagicMock:
    pages = []
    for text in texts:
        page = MagicMock()
        page.get_text.return_value = text
        pages.append(page)
    mock_doc = MagicMock()
    mock_doc.__len__ = MagicMock(return_value=len(pages))
    mock_doc.__getitem__ = MagicMock(side_effect=lambda index: pages[index])
    mock_fitz.open.return_value = mock_doc
    return mock_doc


class TestPdf:
    """PDF extraction through PyMuPDF."""

    @patch("folio.ingestion.reader.fitz")
    def test_iter_pdf_pages(self, mock_fitz: MagicMock, tmp_path: Path) -> None:
        """Pages are normalized and blank pages dropped."""
        mock_doc = _mock_pdf(mock_fitz, ["  Page 1  \n\n text ", "   ", "Page 3"])
        pdf_path = tmp_path / "doc.pdf"
        pdf_path.write_bytes(b"dummy")

        pages = list(iter_pdf_pages(pdf_path))

        assert pages == ["Page 1\ntext", "Page 3"]
        mock_doc.close.assert_called_once()

    @patch("folio.ingestion.reader.fitz")
    def test_read_pdf_joins_pages(self, mock_fitz: MagicMock, tmp_path: Path) -> None:
        _mock_pdf(mock_fitz, ["one", "two"])
        assert read_pdf(tmp_path / "doc.pdf") == "one\ntwo"

    @patch("folio.ingestion.reader.fitz")
    def test_read_content_dispatches_pdf(self, mock_fitz: MagicMock, tmp_path: Path) -> None:
        _mock_pdf(mock_fitz, ["pdf text"])
        assert read_content(tmp_path / "Report.PDF") == "pdf text"


class TestReadContent:
    """Dispatch on file extension."""

    @pytest.mark.parametrize("name", ["notes.txt", "notes.md", "data.json", "page.html"])
    def test_text_types(self, tmp_path: Path, name: str) -> None:
        path = tmp_path / name
        path.write_text("héllo world", encoding="utf-8")
        assert read_content(path) == "héllo world"

    def test_unsupported_type_returns_empty(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        path = tmp_path / "image.png"
        path.write_bytes(b"\x89PNG")
        with caplog.at_level(logging.WARNING):
            assert read_content(path) == ""
        assert "Unsupported file type" in caplog.text

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            read_content(tmp_path / "missing.txt")
