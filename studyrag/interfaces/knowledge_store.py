"""Abstract base class for the document / knowledge-chunk store.

The store owns two record kinds:

    documents : id, name, doc_type, course_id, status, status_message, metadata
    chunks    : id, document_id (FK, cascade delete), content, metadata,
                 embedding (nullable), created_at

It also answers hybrid (vector + keyword) queries.  The fusion method and
its constant are store-side concerns; callers pass them through unchanged.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from studyrag.models.document import Document, DocumentStatus, KnowledgeChunk


# Concrete implementations: SQLiteKnowledgeStore
# Located in: studyrag/providers/store/
class IKnowledgeStore(ABC):
    """Contract for persisting documents and chunks and querying them."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indices if they do not exist."""

    # -- documents -------------------------------------------------------

    @abstractmethod
    async def create_document(self, document: Document) -> Document:
        """Insert a new document record and return it."""

    @abstractmethod
    async def get_document(self, document_id: str) -> Document | None:
        """Return the document, or ``None`` when it does not exist."""

    @abstractmethod
    async def list_documents(self, course_id: str | None = None) -> list[Document]:
        """Return documents, newest first, optionally scoped to a course."""

    @abstractmethod
    async def update_document_status(
        self,
        document_id: str,
        status: DocumentStatus,
        message: str | None = None,
    ) -> None:
        """Set the document's status and status message."""

    @abstractmethod
    async def update_document_metadata(self, document_id: str, metadata: dict[str, Any]) -> None:
        """Replace the document's metadata mapping."""

    @abstractmethod
    async def delete_document(self, document_id: str) -> bool:
        """Delete the document and all of its chunks.  Returns ``False`` if absent."""

    # -- chunks ----------------------------------------------------------

    @abstractmethod
    async def insert_chunks(self, chunks: list[KnowledgeChunk]) -> list[str]:
        """Batch-insert chunks and return their generated IDs, in order.

        Raises
        ------
        studyrag.utils.errors.StoreError
            If the write fails.  Earlier successful batches are unaffected.
        """

    @abstractmethod
    async def get_chunks(self, document_id: str) -> list[KnowledgeChunk]:
        """Return all chunks of a document in insertion order."""

    # -- retrieval -------------------------------------------------------

    @abstractmethod
    async def hybrid_search(
        self,
        query_text: str,
        query_embedding: list[float],
        match_threshold: float,
        match_count: int,
        rrf_k: int,
        filter: dict[str, Any] | None = None,
    ) -> Any:
        """Rank chunks by fused vector similarity and keyword relevance.

        Returns
        -------
        list[dict]
            Ordered ``{"content", "metadata", "score"}`` mappings.  Callers
            must not assume the shape; a non-list response is treated as
            "no results".
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier such as ``"sqlite"``."""
