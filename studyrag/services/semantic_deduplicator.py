"""Semantic deduplication of knowledge points.

Items are embedded once (``title + "\\n" + definition``) in a single
batch call, then clustered greedily in original order: each surviving
item absorbs every later, not-yet-merged item whose cosine similarity is
at or above the threshold.  Comparisons are O(n²); per-document item
counts are in the tens.

Merge rule: the item with the longer definition is primary and keeps its
title and definition; formulas, concepts and examples are unioned in
first-seen order; source pages are unioned and sorted.
"""

from __future__ import annotations

import structlog

from studyrag.models.items import KnowledgePoint
from studyrag.services.embedding_client import EmbeddingClient
from studyrag.utils.vectors import cosine_similarity

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_THRESHOLD = 0.9


def _union(first: list, second: list) -> list:
    return list(dict.fromkeys([*first, *second]))


def merge_knowledge_points(a: KnowledgePoint, b: KnowledgePoint) -> KnowledgePoint:
    """Merge two near-duplicate knowledge points into one record."""
    primary, secondary = (a, b) if len(a.definition) >= len(b.definition) else (b, a)
    return primary.model_copy(
        update={
            "key_formulas": _union(primary.key_formulas, secondary.key_formulas),
            "key_concepts": _union(primary.key_concepts, secondary.key_concepts),
            "examples": _union(primary.examples, secondary.examples),
            "source_pages": sorted(set(primary.source_pages) | set(secondary.source_pages)),
        }
    )


class SemanticDeduplicator:
    """Clusters and merges knowledge points by embedding similarity."""

    def __init__(self, embedding_client: EmbeddingClient, threshold: float = _DEFAULT_THRESHOLD) -> None:
        self._embeddings = embedding_client
        self._threshold = threshold

    async def deduplicate(self, items: list[KnowledgePoint]) -> list[KnowledgePoint]:
        """Return *items* with near-duplicates merged, preserving order.

        Lists of 0 or 1 items are returned unchanged without any embedding
        call.  Embedding failures propagate; the caller decides whether to
        fall back to the unmodified list.
        """
        if len(items) <= 1:
            return items

        vectors = await self._embeddings.embed_many([f"{p.title}\n{p.definition}" for p in items])

        merged: set[int] = set()
        result: list[KnowledgePoint] = []
        for i, item in enumerate(items):
            if i in merged:
                continue
            current = item
            for j in range(i + 1, len(items)):
                if j in merged:
                    continue
                if cosine_similarity(vectors[i], vectors[j]) >= self._threshold:
                    current = merge_knowledge_points(current, items[j])
                    merged.add(j)
            result.append(current)

        logger.info(
            "semantic_dedup_complete",
            input_items=len(items),
            output_items=len(result),
            merged=len(merged),
            threshold=self._threshold,
        )
        return result
