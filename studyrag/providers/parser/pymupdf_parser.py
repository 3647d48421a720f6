"""PDF page-text extraction using PyMuPDF (``fitz``).

Opens the PDF from memory and returns one :class:`PageText` per page,
1-based, including pages with no text so page numbers stay aligned with
the source.  Parsing runs in a worker thread because PyMuPDF is blocking.
"""

from __future__ import annotations

import asyncio

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog

from studyrag.interfaces.document_parser import IDocumentParser
from studyrag.models.document import PageText, ParsedDocument
from studyrag.utils.errors import DocumentParseError

logger = structlog.get_logger(logger_name=__name__)


class PyMuPDFParser(IDocumentParser):
    """Extracts page-numbered plain text from PDF bytes."""

    async def parse(self, data: bytes) -> ParsedDocument:
        return await asyncio.to_thread(self._parse_sync, data)

    def get_provider_name(self) -> str:
        return "pymupdf"

    def _parse_sync(self, data: bytes) -> ParsedDocument:
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:
            logger.error("pdf_open_failed", error=str(exc), size=len(data))
            raise DocumentParseError(
                message="Failed to parse PDF content",
                provider_name=self.get_provider_name(),
            ) from exc

        pages: list[PageText] = []
        try:
            for index in range(doc.page_count):
                text = doc[index].get_text("text") or ""
                pages.append(PageText(page=index + 1, text=text))
        except Exception as exc:
            logger.error("pdf_page_read_failed", error=str(exc), page=len(pages) + 1)
            raise DocumentParseError(
                message="Failed to parse PDF content",
                provider_name=self.get_provider_name(),
            ) from exc
        finally:
            doc.close()

        logger.info(
            "pdf_parsed",
            pages=len(pages),
            text_chars=sum(len(p.text) for p in pages),
        )
        return ParsedDocument(pages=pages, total_pages=len(pages))
