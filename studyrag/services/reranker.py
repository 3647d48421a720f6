"""Optional AI reranking of retrieved chunks.

The AI scores each candidate 1-10 for relevance to the query; chunks are
reordered by that score (ties by the store's fused score) and cut to
``top_k``.  Any failure falls back to the original order.
"""

from __future__ import annotations

import structlog
from pydantic import BaseModel, Field, ValidationError

from studyrag.interfaces.llm_provider import ILLMProvider
from studyrag.models.document import RetrievedChunk
from studyrag.services.schema_validator import load_json

logger = structlog.get_logger(logger_name=__name__)

_PREVIEW_CHARS = 300
_MISSING_SCORE = 5.0

_RERANK_PROMPT = """You are a relevance scoring system. Score how relevant each text chunk is to the user's query.

Query: "{query}"

Chunks:
{chunks}

For each chunk, provide a relevance score from 1 (not relevant) to 10 (highly relevant).

Return ONLY a JSON object like: {{"scores": [{{"index": 0, "score": 8}}, {{"index": 1, "score": 3}}]}}
Every chunk index must appear exactly once."""


class _Score(BaseModel):
    index: int = Field(ge=0)
    score: float = Field(ge=0, le=10)


class LLMReranker:
    def __init__(self, llm: ILLMProvider) -> None:
        self._llm = llm

    async def rerank(self, query: str, chunks: list[RetrievedChunk], top_k: int) -> list[RetrievedChunk]:
        if len(chunks) <= top_k:
            return chunks

        summaries = "\n\n".join(f"[{i}] {c.content[:_PREVIEW_CHARS]}" for i, c in enumerate(chunks))
        try:
            text = await self._llm.generate_json(
                _RERANK_PROMPT.format(query=query, chunks=summaries),
                temperature=0.0,
            )
            raw = load_json(text)
            if isinstance(raw, dict):
                raw = raw.get("scores", [])
            scores = {s.index: s.score for s in (_Score.model_validate(r) for r in raw)}
        except (ValidationError, ValueError, TypeError) as exc:
            logger.warning("rerank_invalid_response", error=str(exc))
            return chunks[:top_k]
        except Exception as exc:  # noqa: BLE001
            logger.warning("rerank_failed", error=str(exc))
            return chunks[:top_k]

        order = sorted(
            range(len(chunks)),
            key=lambda i: (scores.get(i, _MISSING_SCORE), chunks[i].score),
            reverse=True,
        )
        return [chunks[i] for i in order[:top_k]]
