"""Grounding-context assembly from hybrid search.

One query embedding, one hybrid store call, and a plain-text rendering:
each chunk becomes ``content`` plus `` (Page N)`` when its metadata has a
``page``, and chunks are joined by a ``---`` separator.  Every failure
(embedding, store, unexpected response shape) degrades to an empty
context; the result only ever feeds a best-effort AI prompt.
"""

from __future__ import annotations

from typing import Any

import structlog

from studyrag.interfaces.knowledge_store import IKnowledgeStore
from studyrag.models.document import RetrievedChunk
from studyrag.services.embedding_client import EmbeddingClient

logger = structlog.get_logger(logger_name=__name__)

CONTEXT_SEPARATOR = "\n\n---\n\n"

_DEFAULT_MATCH_THRESHOLD = 0.5
_DEFAULT_MATCH_COUNT = 5
_DEFAULT_RRF_K = 60


def format_chunk(content: str, metadata: dict[str, Any] | None) -> str:
    page = metadata.get("page") if isinstance(metadata, dict) else None
    return f"{content} (Page {page})" if page else content


def format_context(chunks: list[RetrievedChunk]) -> str:
    return CONTEXT_SEPARATOR.join(format_chunk(c.content, c.metadata) for c in chunks)


class RetrievalAssembler:
    """Builds citation-annotated context text for a query."""

    def __init__(
        self,
        embedding_client: EmbeddingClient,
        store: IKnowledgeStore,
        match_threshold: float = _DEFAULT_MATCH_THRESHOLD,
        match_count: int = _DEFAULT_MATCH_COUNT,
        rrf_k: int = _DEFAULT_RRF_K,
        reranker: Any | None = None,
    ) -> None:
        self._embeddings = embedding_client
        self._store = store
        self._match_threshold = match_threshold
        self._match_count = match_count
        self._rrf_k = rrf_k
        self._reranker = reranker

    async def search(
        self,
        query: str,
        filter: dict[str, Any] | None = None,
        match_count: int | None = None,
    ) -> list[RetrievedChunk]:
        """Return ranked chunks for *query*; ``[]`` on any failure."""
        limit = match_count or self._match_count
        try:
            embedding = await self._embeddings.embed_one(query)
            # Over-fetch when a reranker will cut the list back down.
            fetch = limit * 3 if self._reranker is not None else limit
            data = await self._store.hybrid_search(
                query_text=query,
                query_embedding=embedding,
                match_threshold=self._match_threshold,
                match_count=fetch,
                rrf_k=self._rrf_k,
                filter=filter or {},
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("retrieval_failed", error=str(exc), query_chars=len(query))
            return []

        if not isinstance(data, list):
            logger.warning("retrieval_unexpected_shape", response_type=type(data).__name__)
            return []

        chunks: list[RetrievedChunk] = []
        for row in data:
            if not isinstance(row, dict) or not isinstance(row.get("content"), str):
                continue
            metadata = row.get("metadata")
            chunks.append(
                RetrievedChunk(
                    content=row["content"],
                    metadata=metadata if isinstance(metadata, dict) else {},
                    score=float(row.get("score") or row.get("similarity") or 0.0),
                )
            )

        if self._reranker is not None:
            chunks = await self._reranker.rerank(query, chunks, limit)

        logger.info("retrieval_complete", results=len(chunks), filter_keys=sorted((filter or {}).keys()))
        return chunks

    async def retrieve_context(
        self,
        query: str,
        filter: dict[str, Any] | None = None,
        match_count: int | None = None,
    ) -> str:
        """Return formatted grounding context for *query* (``""`` when none)."""
        return format_context(await self.search(query, filter, match_count))
