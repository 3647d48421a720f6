"""Pydantic request/response schemas for the StudyRAG API.

Request schemas end with ``Request`` and response schemas with
``Response``.  The multipart upload for ``/documents/parse`` is declared
with ``Form``/``UploadFile`` parameters in the route itself, so it has no
schema here.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from studyrag.models.document import Document, KnowledgeChunk
from studyrag.models.items import DocType


class CreateDocumentRequest(BaseModel):
    """Register a document record before uploading its file."""

    name: str = Field(..., min_length=1, max_length=255)
    doc_type: DocType = DocType.LECTURE
    course_id: str | None = None


class DocumentResponse(BaseModel):
    id: str
    name: str
    doc_type: DocType
    course_id: str | None = None
    status: str
    status_message: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @classmethod
    def from_document(cls, document: Document) -> DocumentResponse:
        return cls(**document.model_dump(mode="json"))


class DocumentListResponse(BaseModel):
    documents: list[DocumentResponse]
    total: int


class ChunkResponse(BaseModel):
    """A persisted chunk, without its embedding vector."""

    id: str | None
    document_id: str
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    has_embedding: bool
    created_at: datetime

    @classmethod
    def from_chunk(cls, chunk: KnowledgeChunk) -> ChunkResponse:
        return cls(
            id=chunk.id,
            document_id=chunk.document_id,
            content=chunk.content,
            metadata=chunk.metadata,
            has_embedding=bool(chunk.embedding),
            created_at=chunk.created_at,
        )


class ChunkListResponse(BaseModel):
    document_id: str
    chunks: list[ChunkResponse]
    total: int


class DeleteResponse(BaseModel):
    id: str
    deleted: bool


class IngestionStatusResponse(BaseModel):
    """Latest progress snapshot for an ingestion session."""

    session_id: str
    stage: str
    message: str | None = None
    document_id: str | None = None
    current: int = 0
    total: int = 0
    chunk_ids: list[str] = Field(default_factory=list)
    error: dict[str, Any] | None = None
    finished: bool = False


class RetrievalRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=2000)
    filter: dict[str, Any] | None = Field(
        default=None,
        description="Document fields (course_id, doc_type, document_id) or chunk metadata keys.",
    )
    match_count: int | None = Field(default=None, ge=1, le=50)


class RetrievalResponse(BaseModel):
    context: str


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
