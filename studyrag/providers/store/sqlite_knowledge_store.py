"""SQLite-backed knowledge store.

Persists documents and knowledge chunks to a local SQLite database
(``data/studyrag.db`` by default) using ``aiosqlite`` for async I/O.
Embeddings are stored as JSON arrays.

Hybrid search runs in Python over the candidate rows selected by the
filter:

  1. vector ranking: cosine similarity against the query embedding,
     keeping rows at or above ``match_threshold``
  2. keyword ranking: number of query-term occurrences in the content
  3. reciprocal-rank fusion of the two rankings with constant ``rrf_k``
"""

from __future__ import annotations

import json
import re
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from studyrag.interfaces.knowledge_store import IKnowledgeStore
from studyrag.models.document import Document, DocumentStatus, KnowledgeChunk
from studyrag.utils.errors import StoreError
from studyrag.utils.vectors import cosine_similarity, reciprocal_rank_fusion

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/studyrag.db")

_CREATE_TABLES_SQL = [
    """\
CREATE TABLE IF NOT EXISTS documents (
    id              TEXT PRIMARY KEY,
    name            TEXT NOT NULL,
    doc_type        TEXT NOT NULL,
    course_id       TEXT,
    status          TEXT NOT NULL,
    status_message  TEXT,
    metadata        TEXT NOT NULL DEFAULT '{}',
    created_at      TEXT NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS chunks (
    id           TEXT PRIMARY KEY,
    document_id  TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    seq          INTEGER NOT NULL,
    content      TEXT NOT NULL,
    metadata     TEXT NOT NULL DEFAULT '{}',
    embedding    TEXT,
    created_at   TEXT NOT NULL
);
""",
]

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_chunks_document ON chunks(document_id, seq);",
    "CREATE INDEX IF NOT EXISTS idx_documents_course ON documents(course_id);",
]

_INSERT_DOCUMENT_SQL = """\
INSERT INTO documents (id, name, doc_type, course_id, status, status_message, metadata, created_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?);
"""

_INSERT_CHUNK_SQL = """\
INSERT INTO chunks (id, document_id, seq, content, metadata, embedding, created_at)
VALUES (?, ?, ?, ?, ?, ?, ?);
"""

_SELECT_CANDIDATES_SQL = """\
SELECT c.id, c.document_id, c.content, c.metadata, c.embedding,
       d.course_id, d.doc_type, d.name
FROM chunks c JOIN documents d ON d.id = c.document_id
"""

# Filter keys that live on the documents table rather than chunk metadata.
_DOCUMENT_FILTER_COLUMNS = {
    "document_id": "c.document_id",
    "course_id": "d.course_id",
    "doc_type": "d.doc_type",
}

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


def _tokenize(text: str) -> list[str]:
    return [t for t in _TOKEN_RE.findall(text.lower()) if len(t) > 1]


class SQLiteKnowledgeStore(IKnowledgeStore):
    """SQLite-backed document and chunk persistence with hybrid search."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def _connect(self) -> aiosqlite.Connection:
        db = await aiosqlite.connect(str(self._db_path))
        db.row_factory = aiosqlite.Row
        await db.execute("PRAGMA foreign_keys = ON;")
        return db

    async def initialize(self) -> None:
        """Create the documents/chunks tables and indices if missing."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            for table_sql in _CREATE_TABLES_SQL:
                await db.execute(table_sql)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("knowledge_store_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def create_document(self, document: Document) -> Document:
        try:
            db = await self._connect()
            try:
                await db.execute(
                    _INSERT_DOCUMENT_SQL,
                    (
                        document.id,
                        document.name,
                        document.doc_type.value,
                        document.course_id,
                        document.status.value,
                        document.status_message,
                        json.dumps(document.metadata),
                        document.created_at.isoformat(),
                    ),
                )
                await db.commit()
            finally:
                await db.close()
        except aiosqlite.Error as exc:
            raise StoreError(
                message=f"Failed to create document: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.info("document_created", document_id=document.id, doc_type=document.doc_type.value)
        return document

    async def get_document(self, document_id: str) -> Document | None:
        db = await self._connect()
        try:
            cursor = await db.execute("SELECT * FROM documents WHERE id = ?", (document_id,))
            row = await cursor.fetchone()
        finally:
            await db.close()
        return self._row_to_document(row) if row else None

    async def list_documents(self, course_id: str | None = None) -> list[Document]:
        db = await self._connect()
        try:
            if course_id is None:
                cursor = await db.execute("SELECT * FROM documents ORDER BY created_at DESC")
            else:
                cursor = await db.execute(
                    "SELECT * FROM documents WHERE course_id = ? ORDER BY created_at DESC",
                    (course_id,),
                )
            rows = await cursor.fetchall()
        finally:
            await db.close()
        return [self._row_to_document(r) for r in rows]

    async def update_document_status(
        self,
        document_id: str,
        status: DocumentStatus,
        message: str | None = None,
    ) -> None:
        try:
            db = await self._connect()
            try:
                await db.execute(
                    "UPDATE documents SET status = ?, status_message = ? WHERE id = ?",
                    (status.value, message, document_id),
                )
                await db.commit()
            finally:
                await db.close()
        except aiosqlite.Error as exc:
            raise StoreError(
                message=f"Failed to update document status: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.debug("document_status_updated", document_id=document_id, status=status.value)

    async def update_document_metadata(self, document_id: str, metadata: dict[str, Any]) -> None:
        try:
            db = await self._connect()
            try:
                await db.execute(
                    "UPDATE documents SET metadata = ? WHERE id = ?",
                    (json.dumps(metadata), document_id),
                )
                await db.commit()
            finally:
                await db.close()
        except aiosqlite.Error as exc:
            raise StoreError(
                message=f"Failed to update document metadata: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def delete_document(self, document_id: str) -> bool:
        db = await self._connect()
        try:
            cursor = await db.execute("DELETE FROM documents WHERE id = ?", (document_id,))
            await db.commit()
            deleted = cursor.rowcount > 0
        finally:
            await db.close()
        logger.info("document_deleted", document_id=document_id, deleted=deleted)
        return deleted

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    async def insert_chunks(self, chunks: list[KnowledgeChunk]) -> list[str]:
        if not chunks:
            return []

        ids = [chunk.id or str(uuid.uuid4()) for chunk in chunks]
        try:
            db = await self._connect()
            try:
                cursor = await db.execute(
                    "SELECT COALESCE(MAX(seq), -1) FROM chunks WHERE document_id = ?",
                    (chunks[0].document_id,),
                )
                (last_seq,) = await cursor.fetchone()
                rows = [
                    (
                        chunk_id,
                        chunk.document_id,
                        last_seq + offset + 1,
                        chunk.content,
                        json.dumps(chunk.metadata),
                        json.dumps(chunk.embedding) if chunk.embedding is not None else None,
                        chunk.created_at.isoformat(),
                    )
                    for offset, (chunk_id, chunk) in enumerate(zip(ids, chunks))
                ]
                await db.executemany(_INSERT_CHUNK_SQL, rows)
                await db.commit()
            finally:
                await db.close()
        except aiosqlite.Error as exc:
            raise StoreError(
                message=f"Failed to insert {len(chunks)} chunks: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info("chunks_inserted", document_id=chunks[0].document_id, count=len(ids))
        return ids

    async def get_chunks(self, document_id: str) -> list[KnowledgeChunk]:
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT * FROM chunks WHERE document_id = ? ORDER BY seq",
                (document_id,),
            )
            rows = await cursor.fetchall()
        finally:
            await db.close()
        return [
            KnowledgeChunk(
                id=r["id"],
                document_id=r["document_id"],
                content=r["content"],
                metadata=json.loads(r["metadata"] or "{}"),
                embedding=json.loads(r["embedding"]) if r["embedding"] else None,
                created_at=datetime.fromisoformat(r["created_at"]),
            )
            for r in rows
        ]

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    async def hybrid_search(
        self,
        query_text: str,
        query_embedding: list[float],
        match_threshold: float,
        match_count: int,
        rrf_k: int,
        filter: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        sql, params, metadata_filter = self._build_candidate_query(filter or {})
        try:
            db = await self._connect()
            try:
                cursor = await db.execute(sql, params)
                rows = await cursor.fetchall()
            finally:
                await db.close()
        except aiosqlite.Error as exc:
            raise StoreError(
                message=f"Hybrid search failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        candidates: dict[str, dict[str, Any]] = {}
        similarities: dict[str, float] = {}
        keyword_hits: dict[str, int] = {}
        terms = _tokenize(query_text)

        for row in rows:
            metadata = json.loads(row["metadata"] or "{}")
            if any(metadata.get(k) != v for k, v in metadata_filter.items()):
                continue
            chunk_id = row["id"]
            candidates[chunk_id] = {
                "id": chunk_id,
                "document_id": row["document_id"],
                "content": row["content"],
                "metadata": metadata,
            }
            if row["embedding"] and query_embedding:
                similarity = cosine_similarity(query_embedding, json.loads(row["embedding"]))
                if similarity >= match_threshold:
                    similarities[chunk_id] = similarity
            if terms:
                tokens = _tokenize(row["content"])
                hits = sum(tokens.count(term) for term in terms)
                if hits:
                    keyword_hits[chunk_id] = hits

        vector_ranking = sorted(similarities, key=lambda cid: similarities[cid], reverse=True)
        keyword_ranking = sorted(keyword_hits, key=lambda cid: keyword_hits[cid], reverse=True)
        fused = reciprocal_rank_fusion([vector_ranking, keyword_ranking], k=rrf_k)

        ordered = sorted(fused, key=lambda cid: fused[cid], reverse=True)[:match_count]
        results = [
            {
                **candidates[cid],
                "similarity": similarities.get(cid, 0.0),
                "score": fused[cid],
            }
            for cid in ordered
        ]
        logger.debug(
            "hybrid_search",
            candidates=len(candidates),
            vector_hits=len(vector_ranking),
            keyword_hits=len(keyword_ranking),
            returned=len(results),
        )
        return results

    def get_provider_name(self) -> str:
        return "sqlite"

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _build_candidate_query(
        filter: dict[str, Any],
    ) -> tuple[str, tuple[Any, ...], dict[str, Any]]:
        """Split *filter* into SQL conditions and chunk-metadata conditions."""
        clauses: list[str] = []
        params: list[Any] = []
        metadata_filter: dict[str, Any] = {}
        for key, value in filter.items():
            column = _DOCUMENT_FILTER_COLUMNS.get(key)
            if column is None:
                metadata_filter[key] = value
            else:
                clauses.append(f"{column} = ?")
                params.append(value)
        sql = _SELECT_CANDIDATES_SQL
        if clauses:
            sql += "WHERE " + " AND ".join(clauses)
        return sql, tuple(params), metadata_filter

    @staticmethod
    def _row_to_document(row: aiosqlite.Row) -> Document:
        return Document(
            id=row["id"],
            name=row["name"],
            doc_type=row["doc_type"],
            course_id=row["course_id"],
            status=row["status"],
            status_message=row["status_message"],
            metadata=json.loads(row["metadata"] or "{}"),
            created_at=datetime.fromisoformat(row["created_at"]),
        )
