"""Abstract base class for page-text extraction from uploaded files."""

from __future__ import annotations

from abc import ABC, abstractmethod

from studyrag.models.document import ParsedDocument


class IDocumentParser(ABC):
    """Contract for turning raw file bytes into page-numbered plain text."""

    @abstractmethod
    async def parse(self, data: bytes) -> ParsedDocument:
        """Extract page text from *data*.

        Raises
        ------
        studyrag.utils.errors.DocumentParseError
            If the file cannot be opened or read.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier such as ``"pymupdf"``."""
