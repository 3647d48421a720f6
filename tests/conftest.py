"""Shared pytest fixtures and deterministic fakes for the StudyRAG test suite.

The fakes implement the real interfaces so the services and the
orchestrator run unmodified against them:

- :class:`ScriptedLLM` replays a queue of responses (strings or exceptions).
- :class:`FakeEmbeddingProvider` hashes text to unit vectors, with optional
  per-text overrides for similarity-controlled tests.
- :class:`InMemoryKnowledgeStore` keeps documents and chunks in dicts.
- :class:`FakeParser` returns fixed pages or raises.
"""

from __future__ import annotations

import hashlib
import json
import uuid
from typing import Any
from unittest.mock import AsyncMock

import pytest

from studyrag.interfaces.document_parser import IDocumentParser
from studyrag.interfaces.embedding_provider import IEmbeddingProvider
from studyrag.interfaces.knowledge_store import IKnowledgeStore
from studyrag.interfaces.llm_provider import ILLMProvider
from studyrag.models.document import (
    Document,
    DocumentStatus,
    KnowledgeChunk,
    PageText,
    ParsedDocument,
)
from studyrag.pipeline.orchestrator import IngestionOrchestrator
from studyrag.pipeline.progress_tracker import ProgressTracker
from studyrag.services.content_extractor import ContentExtractor
from studyrag.services.embedding_client import EmbeddingClient
from studyrag.services.outline_generator import OutlineGenerator
from studyrag.services.quality_reviewer import QualityReviewer
from studyrag.services.semantic_deduplicator import SemanticDeduplicator
from studyrag.utils.errors import StoreError

PDF_BYTES = b"%PDF-1.4\n% fake test document\n"

_EMBEDDING_DIM = 64


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------


def hash_to_vector(text: str, dim: int = _EMBEDDING_DIM) -> list[float]:
    """Deterministic unit vector for *text* (same text, same vector)."""
    raw = hashlib.sha256(text.encode("utf-8")).digest()
    while len(raw) < dim:
        raw += hashlib.sha256(raw).digest()
    values = [b - 127.5 for b in raw[:dim]]
    magnitude = max(sum(v * v for v in values) ** 0.5, 1e-10)
    return [v / magnitude for v in values]


def knowledge_point(index: int, **overrides: Any) -> dict[str, Any]:
    """A valid raw knowledge point as the AI service would return it."""
    raw = {
        "title": f"Concept {index}",
        "definition": f"Definition of concept number {index} in enough words.",
        "keyFormulas": [],
        "keyConcepts": [f"term-{index}"],
        "examples": [],
        "sourcePages": [index],
    }
    raw.update(overrides)
    return raw


def question(order: int, **overrides: Any) -> dict[str, Any]:
    raw = {
        "orderNum": order,
        "type": "short_answer",
        "content": f"Explain the meaning of topic number {order} in detail.",
        "options": [],
        "referenceAnswer": f"Answer {order}",
        "explanation": "",
        "points": 5,
        "difficulty": "medium",
        "sourcePages": [order],
    }
    raw.update(overrides)
    return raw


def extraction_payload(items: list[dict[str, Any]], **extra: Any) -> str:
    payload: dict[str, Any] = {
        "sections": [
            {
                "title": "Chapter 1",
                "type": "mixed",
                "sourcePages": [1],
                "itemIndices": list(range(len(items))),
            }
        ],
        "items": items,
    }
    payload.update(extra)
    return json.dumps(payload)


def review_payload(verdicts: list[tuple[int, bool, int]]) -> str:
    """``[(index, is_relevant, score), ...]`` as a review response."""
    return json.dumps(
        {
            "reviews": [
                {"index": i, "isRelevant": relevant, "qualityScore": score, "issues": []}
                for i, relevant, score in verdicts
            ]
        }
    )


def parse_sse(body: str) -> list[tuple[str, dict[str, Any]]]:
    """Split an SSE body into ``(event_name, data)`` pairs."""
    events: list[tuple[str, dict[str, Any]]] = []
    for frame in body.strip().split("\n\n"):
        if not frame.strip():
            continue
        name, data = "", "{}"
        for line in frame.splitlines():
            if line.startswith("event: "):
                name = line[len("event: ") :]
            elif line.startswith("data: "):
                data = line[len("data: ") :]
        events.append((name, json.loads(data)))
    return events


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class ScriptedLLM(ILLMProvider):
    """Returns queued responses in order; an Exception entry is raised."""

    def __init__(self, responses: list[str | Exception] | None = None, default: str = "{}") -> None:
        self.responses: list[str | Exception] = list(responses or [])
        self.default = default
        self.prompts: list[str] = []

    @property
    def call_count(self) -> int:
        return len(self.prompts)

    async def generate_json(self, prompt: str, temperature: float = 0.0) -> str:
        self.prompts.append(prompt)
        if not self.responses:
            return self.default
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def get_provider_name(self) -> str:
        return "scripted-llm"

    def is_available(self) -> bool:
        return True


class FakeEmbeddingProvider(IEmbeddingProvider):
    """Hash-based embeddings; ``overrides`` maps a text prefix to a fixed vector."""

    def __init__(
        self,
        overrides: dict[str, list[float]] | None = None,
        failures: list[Exception] | None = None,
        empty: bool = False,
    ) -> None:
        self.overrides = overrides or {}
        self.failures = list(failures or [])
        self.empty = empty
        self.single_calls: list[str] = []
        self.batch_calls: list[list[str]] = []

    def _vector(self, text: str) -> list[float]:
        for prefix, vector in self.overrides.items():
            if text.startswith(prefix):
                return list(vector)
        return hash_to_vector(text)

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.batch_calls.append(list(texts))
        if self.failures:
            raise self.failures.pop(0)
        return [self._vector(t) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        self.single_calls.append(text)
        if self.failures:
            raise self.failures.pop(0)
        if self.empty:
            return []
        return self._vector(text)

    def get_dimension(self) -> int:
        return _EMBEDDING_DIM

    def get_provider_name(self) -> str:
        return "fake-embedding"

    def is_available(self) -> bool:
        return True


class InMemoryKnowledgeStore(IKnowledgeStore):
    """Dict-backed store.  ``fail_on_insert`` makes the Nth insert (1-based) fail."""

    def __init__(self, fail_on_insert: int | None = None) -> None:
        self.documents: dict[str, Document] = {}
        self.chunks: list[KnowledgeChunk] = []
        self.status_history: list[tuple[str, DocumentStatus, str | None]] = []
        self.insert_calls = 0
        self.fail_on_insert = fail_on_insert
        self.search_response: Any = None
        self.search_calls: list[dict[str, Any]] = []

    async def initialize(self) -> None:
        return None

    async def create_document(self, document: Document) -> Document:
        self.documents[document.id] = document
        return document

    async def get_document(self, document_id: str) -> Document | None:
        return self.documents.get(document_id)

    async def list_documents(self, course_id: str | None = None) -> list[Document]:
        return [d for d in self.documents.values() if course_id is None or d.course_id == course_id]

    async def update_document_status(
        self,
        document_id: str,
        status: DocumentStatus,
        message: str | None = None,
    ) -> None:
        self.status_history.append((document_id, status, message))
        document = self.documents.get(document_id)
        if document is not None:
            self.documents[document_id] = document.model_copy(
                update={"status": status, "status_message": message}
            )

    async def update_document_metadata(self, document_id: str, metadata: dict[str, Any]) -> None:
        document = self.documents.get(document_id)
        if document is not None:
            self.documents[document_id] = document.model_copy(update={"metadata": dict(metadata)})

    async def delete_document(self, document_id: str) -> bool:
        if document_id not in self.documents:
            return False
        del self.documents[document_id]
        self.chunks = [c for c in self.chunks if c.document_id != document_id]
        return True

    async def insert_chunks(self, chunks: list[KnowledgeChunk]) -> list[str]:
        self.insert_calls += 1
        if self.fail_on_insert is not None and self.insert_calls == self.fail_on_insert:
            raise StoreError(message="disk full", provider_name="memory")
        stored = [c.model_copy(update={"id": str(uuid.uuid4())}) for c in chunks]
        self.chunks.extend(stored)
        return [c.id for c in stored if c.id is not None]

    async def get_chunks(self, document_id: str) -> list[KnowledgeChunk]:
        return [c for c in self.chunks if c.document_id == document_id]

    async def hybrid_search(
        self,
        query_text: str,
        query_embedding: list[float],
        match_threshold: float,
        match_count: int,
        rrf_k: int,
        filter: dict[str, Any] | None = None,
    ) -> Any:
        self.search_calls.append(
            {
                "query_text": query_text,
                "match_threshold": match_threshold,
                "match_count": match_count,
                "rrf_k": rrf_k,
                "filter": filter,
            }
        )
        if self.search_response is not None:
            return self.search_response
        return [{"content": c.content, "metadata": c.metadata} for c in self.chunks][:match_count]

    def get_provider_name(self) -> str:
        return "memory"


class FakeParser(IDocumentParser):
    def __init__(self, pages: list[str] | None = None, error: Exception | None = None) -> None:
        self.pages = pages if pages is not None else ["Lecture text about gradient descent."]
        self.error = error
        self.calls = 0

    async def parse(self, data: bytes) -> ParsedDocument:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return ParsedDocument(
            pages=[PageText(page=i + 1, text=text) for i, text in enumerate(self.pages)],
            total_pages=len(self.pages),
        )

    def get_provider_name(self) -> str:
        return "fake-parser"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
def embedding_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def no_sleep() -> AsyncMock:
    """Replacement for ``asyncio.sleep`` that records delays instantly."""
    return AsyncMock(return_value=None)


@pytest.fixture
def embedding_client(embedding_provider: FakeEmbeddingProvider, no_sleep: AsyncMock) -> EmbeddingClient:
    return EmbeddingClient(embedding_provider, max_attempts=3, base_delay=1.0, sleep=no_sleep)


@pytest.fixture
def store() -> InMemoryKnowledgeStore:
    return InMemoryKnowledgeStore()


@pytest.fixture
def parser() -> FakeParser:
    return FakeParser()


@pytest.fixture
def tracker() -> ProgressTracker:
    return ProgressTracker()


def build_orchestrator(
    *,
    llm: ILLMProvider,
    store: IKnowledgeStore,
    parser: IDocumentParser,
    embedding_client: EmbeddingClient,
    tracker: ProgressTracker,
    save_batch_size: int = 2,
    review_batch_size: int = 20,
    max_file_size: int = 1024 * 1024,
    outline_threshold: int = 10,
) -> IngestionOrchestrator:
    return IngestionOrchestrator(
        store=store,
        parser=parser,
        extractor=ContentExtractor(llm),
        deduplicator=SemanticDeduplicator(embedding_client, threshold=0.9),
        reviewer=QualityReviewer(llm, batch_size=review_batch_size),
        embedding_client=embedding_client,
        progress_tracker=tracker,
        save_batch_size=save_batch_size,
        max_file_size=max_file_size,
        outline_generator=OutlineGenerator(llm, local_threshold=outline_threshold),
    )

