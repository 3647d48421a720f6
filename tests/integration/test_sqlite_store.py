"""Integration tests for SQLiteKnowledgeStore against a temporary database."""

from __future__ import annotations

from pathlib import Path

import pytest

from studyrag.models.document import Document, DocumentStatus, KnowledgeChunk
from studyrag.models.items import DocType
from studyrag.providers.store.sqlite_knowledge_store import SQLiteKnowledgeStore
from studyrag.utils.errors import StoreError


@pytest.fixture
async def sqlite_store(tmp_path: Path) -> SQLiteKnowledgeStore:
    store = SQLiteKnowledgeStore(db_path=tmp_path / "nested" / "test.db")
    await store.initialize()
    return store


def _doc(doc_id: str, course_id: str | None = "c1", doc_type: DocType = DocType.LECTURE) -> Document:
    return Document(id=doc_id, name=f"{doc_id}.pdf", doc_type=doc_type, course_id=course_id)


def _chunk(document_id: str, content: str, embedding: list[float] | None = None, **metadata) -> KnowledgeChunk:
    return KnowledgeChunk(document_id=document_id, content=content, metadata=metadata, embedding=embedding)


class TestDocuments:
    @pytest.mark.asyncio
    async def test_create_and_get(self, sqlite_store: SQLiteKnowledgeStore) -> None:
        await sqlite_store.create_document(_doc("d1"))
        document = await sqlite_store.get_document("d1")

        assert document is not None
        assert document.name == "d1.pdf"
        assert document.status == DocumentStatus.PROCESSING
        assert document.doc_type == DocType.LECTURE

    @pytest.mark.asyncio
    async def test_get_missing(self, sqlite_store: SQLiteKnowledgeStore) -> None:
        assert await sqlite_store.get_document("nope") is None

    @pytest.mark.asyncio
    async def test_duplicate_id_raises_store_error(self, sqlite_store: SQLiteKnowledgeStore) -> None:
        await sqlite_store.create_document(_doc("d1"))
        with pytest.raises(StoreError):
            await sqlite_store.create_document(_doc("d1"))

    @pytest.mark.asyncio
    async def test_list_filters_by_course(self, sqlite_store: SQLiteKnowledgeStore) -> None:
        await sqlite_store.create_document(_doc("d1", course_id="c1"))
        await sqlite_store.create_document(_doc("d2", course_id="c2"))

        assert {d.id for d in await sqlite_store.list_documents()} == {"d1", "d2"}
        assert [d.id for d in await sqlite_store.list_documents(course_id="c2")] == ["d2"]

    @pytest.mark.asyncio
    async def test_status_and_metadata_updates(self, sqlite_store: SQLiteKnowledgeStore) -> None:
        await sqlite_store.create_document(_doc("d1"))
        await sqlite_store.update_document_status("d1", DocumentStatus.ERROR, "PDF contains no extractable text")
        await sqlite_store.update_document_metadata("d1", {"file_hash": "abc"})

        document = await sqlite_store.get_document("d1")
        assert document.status == DocumentStatus.ERROR
        assert document.status_message == "PDF contains no extractable text"
        assert document.metadata == {"file_hash": "abc"}

    @pytest.mark.asyncio
    async def test_delete_cascades_to_chunks(self, sqlite_store: SQLiteKnowledgeStore) -> None:
        await sqlite_store.create_document(_doc("d1"))
        await sqlite_store.insert_chunks([_chunk("d1", "a"), _chunk("d1", "b")])

        assert await sqlite_store.delete_document("d1") is True
        assert await sqlite_store.get_chunks("d1") == []
        assert await sqlite_store.delete_document("d1") is False


class TestChunks:
    @pytest.mark.asyncio
    async def test_insert_preserves_order_across_batches(self, sqlite_store: SQLiteKnowledgeStore) -> None:
        await sqlite_store.create_document(_doc("d1"))
        first = await sqlite_store.insert_chunks([_chunk("d1", "one"), _chunk("d1", "two")])
        second = await sqlite_store.insert_chunks([_chunk("d1", "three", embedding=[0.5, 0.5])])

        chunks = await sqlite_store.get_chunks("d1")

        assert [c.content for c in chunks] == ["one", "two", "three"]
        assert [c.id for c in chunks] == first + second
        assert chunks[0].embedding is None
        assert chunks[2].embedding == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_empty_insert(self, sqlite_store: SQLiteKnowledgeStore) -> None:
        assert await sqlite_store.insert_chunks([]) == []

    @pytest.mark.asyncio
    async def test_insert_for_unknown_document_raises(self, sqlite_store: SQLiteKnowledgeStore) -> None:
        with pytest.raises(StoreError):
            await sqlite_store.insert_chunks([_chunk("ghost", "orphan")])


class TestHybridSearch:
    @pytest.mark.asyncio
    async def test_fuses_vector_and_keyword_rankings(self, sqlite_store: SQLiteKnowledgeStore) -> None:
        await sqlite_store.create_document(_doc("d1"))
        await sqlite_store.insert_chunks(
            [
                _chunk("d1", "entropy measures uncertainty entropy", [1.0, 0.0], page=2),
                _chunk("d1", "gradient descent", [0.0, 1.0], page=3),
                _chunk("d1", "entropy in thermodynamics", [0.7, 0.7], page=4),
            ]
        )

        results = await sqlite_store.hybrid_search(
            query_text="entropy",
            query_embedding=[1.0, 0.0],
            match_threshold=0.5,
            match_count=5,
            rrf_k=60,
        )

        assert [r["content"] for r in results] == [
            "entropy measures uncertainty entropy",
            "entropy in thermodynamics",
        ]
        assert results[0]["metadata"]["page"] == 2
        assert results[0]["score"] > results[1]["score"]

    @pytest.mark.asyncio
    async def test_filters_by_course_and_metadata(self, sqlite_store: SQLiteKnowledgeStore) -> None:
        await sqlite_store.create_document(_doc("d1", course_id="c1"))
        await sqlite_store.create_document(_doc("d2", course_id="c2"))
        await sqlite_store.insert_chunks([_chunk("d1", "entropy a", type="knowledge_point")])
        await sqlite_store.insert_chunks([_chunk("d2", "entropy b", type="knowledge_point")])
        await sqlite_store.insert_chunks([_chunk("d1", "entropy c", type="question")])

        results = await sqlite_store.hybrid_search(
            query_text="entropy",
            query_embedding=[],
            match_threshold=0.5,
            match_count=5,
            rrf_k=60,
            filter={"course_id": "c1", "type": "knowledge_point"},
        )

        assert [r["content"] for r in results] == ["entropy a"]

    @pytest.mark.asyncio
    async def test_match_count_limits_results(self, sqlite_store: SQLiteKnowledgeStore) -> None:
        await sqlite_store.create_document(_doc("d1"))
        await sqlite_store.insert_chunks([_chunk("d1", f"topic {i}", [1.0, 0.0]) for i in range(4)])

        results = await sqlite_store.hybrid_search("topic", [1.0, 0.0], 0.5, 2, 60)

        assert len(results) == 2
