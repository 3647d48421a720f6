"""Document, page, and knowledge-chunk models.

A :class:`Document` owns zero or more :class:`KnowledgeChunk` records.
Its ``status`` is written only by the ingestion orchestrator; readers
(API polling, the CLI) treat it as eventually consistent.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from studyrag.models.items import DocType


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class DocumentStatus(str, Enum):  # noqa: UP042
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class Document(BaseModel):
    """An uploaded source document and its ingestion status."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Document UUID.")
    name: str = Field(description="Display name, usually the uploaded filename.")
    doc_type: DocType = DocType.LECTURE
    course_id: str | None = Field(default=None, description="Owning course, used for scoping.")
    status: DocumentStatus = DocumentStatus.PROCESSING
    status_message: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)


class KnowledgeChunk(BaseModel):
    """The persisted, embedded form of one extracted item.

    ``content`` is the human-readable rendering of the item (see
    :mod:`studyrag.services.chunk_content`); ``metadata`` carries the type
    tag plus the item's original fields.  ``embedding`` is ``None`` only
    before the vector has been generated.
    """

    model_config = ConfigDict(frozen=True)

    id: str | None = Field(default=None, description="Store-generated ID; None before insert.")
    document_id: str
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    embedding: list[float] | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class PageText(BaseModel):
    """Plain text of one page, 1-based page number."""

    model_config = ConfigDict(frozen=True)

    page: int = Field(ge=1)
    text: str = ""


class ParsedDocument(BaseModel):
    model_config = ConfigDict(frozen=True)

    pages: list[PageText] = Field(default_factory=list)
    total_pages: int = 0

    @property
    def total_text(self) -> str:
        """Concatenation of every page's stripped text."""
        return "".join(p.text.strip() for p in self.pages)


class RetrievedChunk(BaseModel):
    """A chunk returned by hybrid search, with its fused rank score."""

    model_config = ConfigDict(frozen=True)

    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    score: float = 0.0
