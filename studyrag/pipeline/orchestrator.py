"""Ingestion orchestrator: one uploaded PDF in, persisted knowledge chunks out.

Sequences the single-flow pipeline for one document::

    file checks → parse pages → extract items → quality gate → embed + persist

Every stage transition produces a new frozen :class:`IngestionState` via
``model_copy``, updates the owning document's status, and is broadcast
through the injected :class:`ProgressTracker` as a ``status`` event.

Failures never escape :meth:`IngestionOrchestrator.ingest`.  A stage that
cannot continue raises :class:`_RunFailed` with an :class:`ErrorCode`;
the boundary turns it into exactly one ``error`` event plus an ``error``
document status.  Chunks flushed before a failure stay in the store.

Cancellation is cooperative: the token is checked between stages and at
the top of every embed iteration.  The pending write batch is flushed
before the run stops, and the document ends ``ready`` with whatever was
persisted.
"""

from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from studyrag.interfaces.document_parser import IDocumentParser
from studyrag.interfaces.knowledge_store import IKnowledgeStore
from studyrag.models.document import Document, DocumentStatus, KnowledgeChunk, PageText
from studyrag.models.events import ErrorCode, EventName, ProgressEvent
from studyrag.models.items import DocType, ExtractedItem, KnowledgePoint, Question
from studyrag.models.pipeline import (
    ExtractionResult,
    IngestionRequest,
    IngestionStage,
    IngestionState,
)
from studyrag.pipeline.cancellation import CancellationToken, is_cancelled
from studyrag.pipeline.progress_tracker import ProgressTracker
from studyrag.services.chunk_content import (
    build_chunk_content,
    build_chunk_metadata,
    dedup_key,
    dedup_key_from_metadata,
)
from studyrag.services.content_extractor import ContentExtractor
from studyrag.services.embedding_client import EmbeddingClient
from studyrag.services.item_validator import validate_questions
from studyrag.services.outline_generator import OutlineGenerator
from studyrag.services.quality_reviewer import QualityReviewer
from studyrag.services.semantic_deduplicator import SemanticDeduplicator
from studyrag.utils.errors import DocumentParseError, PipelineError, StoreError, is_quota_error
from studyrag.utils.logging import bind_log_context, get_logger

PDF_MAGIC = b"%PDF-"

_DEFAULT_MAX_FILE_SIZE = 20 * 1024 * 1024

# Stage → the ``stage`` string carried by ``status`` events.
_STAGE_LABELS: dict[IngestionStage, str] = {
    IngestionStage.PARSING: "parsing_pdf",
    IngestionStage.EXTRACTING: "extracting",
    IngestionStage.REVIEWING: "reviewing",
    IngestionStage.EMBEDDING: "embedding",
    IngestionStage.READY: "complete",
    IngestionStage.CANCELLED: "cancelled",
}

_QUOTA_MESSAGE = "AI service quota exceeded. Please contact your administrator."


class _RunFailed(PipelineError):
    """Stops the run with a user-facing message and an error code."""

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message=message)
        self.code = code


class _RunCancelled(Exception):
    """Cancellation observed between stages."""


@dataclass
class _Run:
    """Mutable holder for the current frozen state of one run."""

    session_id: str
    state: IngestionState
    # dedup_key(item) -> title of the extraction section holding it.
    section_titles: dict[str, str] = field(default_factory=dict)
    extraction_metadata: dict[str, Any] = field(default_factory=dict)
    outline: dict[str, Any] | None = None


class IngestionOrchestrator:
    """Runs the ingestion pipeline for one document at a time.

    All collaborators are injected.  Instances hold no per-run state, so
    one orchestrator can serve concurrent runs for different documents.
    """

    def __init__(
        self,
        store: IKnowledgeStore,
        parser: IDocumentParser,
        extractor: ContentExtractor,
        deduplicator: SemanticDeduplicator,
        reviewer: QualityReviewer,
        embedding_client: EmbeddingClient,
        progress_tracker: ProgressTracker,
        save_batch_size: int = 20,
        max_file_size: int = _DEFAULT_MAX_FILE_SIZE,
        outline_generator: OutlineGenerator | None = None,
    ) -> None:
        self._store = store
        self._parser = parser
        self._extractor = extractor
        self._deduplicator = deduplicator
        self._reviewer = reviewer
        self._embedding_client = embedding_client
        self._progress_tracker = progress_tracker
        self._save_batch_size = max(1, save_batch_size)
        self._max_file_size = max_file_size
        self._outline_generator = outline_generator
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def ingest(
        self,
        request: IngestionRequest,
        data: bytes,
        token: CancellationToken | None = None,
        session_id: str | None = None,
    ) -> IngestionState:
        """Run the whole pipeline for *data* and return the final state.

        Never raises.  The returned state's ``stage`` is one of ``READY``,
        ``CANCELLED`` or ``ERROR``; on ``ERROR`` the ``error_code`` and
        ``error_message`` fields say why.
        """
        session_id = session_id or str(uuid.uuid4())
        run = _Run(
            session_id=session_id,
            state=IngestionState(
                document_id=request.document_id or "",
                doc_type=request.doc_type,
            ),
        )

        with bind_log_context(session_id=session_id):
            try:
                await self._run(run, request, data, token)
            except _RunFailed as exc:
                await self._fail(run, exc.code, exc.message)
            except _RunCancelled:
                await self._finish_cancelled(run)
            except Exception as exc:
                self._logger.exception(
                    "ingestion_unexpected_error",
                    document_id=run.state.document_id,
                    stage=run.state.stage.value,
                    error=str(exc),
                )
                await self._fail(run, ErrorCode.INTERNAL_ERROR, "Internal server error")

        self._logger.info(
            "ingestion_finished",
            session_id=session_id,
            document_id=run.state.document_id,
            stage=run.state.stage.value,
            persisted=run.state.items_persisted,
            batches=run.state.batches_flushed,
        )
        return run.state

    # ------------------------------------------------------------------
    # Pipeline body
    # ------------------------------------------------------------------

    async def _run(
        self,
        run: _Run,
        request: IngestionRequest,
        data: bytes,
        token: CancellationToken | None,
    ) -> None:
        document = await self._resolve_document(run, request, data)

        with bind_log_context(document_id=document.id):
            await self._transition(run, IngestionStage.PARSING, "Parsing PDF...")
            pages = await self._parse(data)
            self._check_cancelled(token)

            await self._transition(run, IngestionStage.EXTRACTING, "Extracting content with AI...")
            items = await self._extract(run, request, pages, token)
            self._check_cancelled(token)
            if not items:
                await self._emit(run, EventName.PROGRESS, {"current": 0, "total": 0})
                await self._finish_ready(run, data, "No content extracted")
                return

            if request.doc_type == DocType.LECTURE:
                items = await self._quality_gate(run, items, token)
                await self._build_outline(run, items, document.name)
            else:
                await self._report_question_warnings(run, items)

            items = await self._skip_existing(run, items)
            if not items:
                await self._finish_ready(run, data, "No new items to add (all duplicates).")
                return

            await self._transition(run, IngestionStage.EMBEDDING, f"Embedding {len(items)} items...")
            cancelled = await self._embed_and_persist(run, items, token)
            if cancelled:
                raise _RunCancelled()

            await self._finish_ready(
                run,
                data,
                f"Done! Saved {run.state.items_persisted} items.",
            )

    async def _resolve_document(
        self, run: _Run, request: IngestionRequest, data: bytes
    ) -> Document:
        if request.document_id:
            document = await self._store.get_document(request.document_id)
            if document is None:
                raise _RunFailed(ErrorCode.NOT_FOUND, "Document not found")
            self._check_file(data)
            return document

        self._check_file(data)
        document = await self._store.create_document(
            Document(
                id=str(uuid.uuid4()),
                name=request.filename,
                doc_type=request.doc_type,
                course_id=request.course_id,
            )
        )
        run.state = run.state.model_copy(update={"document_id": document.id})
        await self._emit(run, EventName.DOCUMENT_CREATED, {"documentId": document.id})
        return document

    def _check_file(self, data: bytes) -> None:
        if len(data) > self._max_file_size:
            limit_mb = self._max_file_size // (1024 * 1024)
            raise _RunFailed(ErrorCode.FILE_TOO_LARGE, f"File too large (max {limit_mb}MB)")
        if not data.startswith(PDF_MAGIC):
            raise _RunFailed(ErrorCode.INVALID_FILE, "File is not a valid PDF")

    async def _parse(self, data: bytes) -> list[PageText]:
        try:
            parsed = await self._parser.parse(data)
        except DocumentParseError as exc:
            self._logger.warning("pdf_parse_failed", error=str(exc))
            raise _RunFailed(ErrorCode.PDF_PARSE_ERROR, "Failed to parse PDF content") from exc

        if not parsed.total_text:
            raise _RunFailed(ErrorCode.EMPTY_PDF, "PDF contains no extractable text")
        return parsed.pages

    async def _extract(
        self,
        run: _Run,
        request: IngestionRequest,
        pages: list[PageText],
        token: CancellationToken | None,
    ) -> list[ExtractedItem]:
        try:
            result = await self._extractor.extract(
                pages,
                doc_type=request.doc_type,
                has_answers=request.has_answers,
                token=token,
            )
        except Exception as exc:
            self._logger.error("extraction_failed", error=str(exc))
            if is_quota_error(exc):
                raise _RunFailed(ErrorCode.LLM_QUOTA_EXCEEDED, _QUOTA_MESSAGE) from exc
            raise _RunFailed(
                ErrorCode.EXTRACTION_ERROR, "Failed to extract content from PDF"
            ) from exc

        for warning in result.warnings:
            await self._warn(run, warning)
        if result.parse_failed:
            raise _RunFailed(ErrorCode.EXTRACTION_ERROR, "Failed to extract content from PDF")

        run.state = run.state.model_copy(update={"items_total": len(result.items)})
        run.section_titles = self._section_titles(result)
        run.extraction_metadata = dict(result.metadata)
        return list(result.items)

    @staticmethod
    def _section_titles(result: ExtractionResult) -> dict[str, str]:
        titles: dict[str, str] = {}
        for section in result.sections:
            for index in section.item_indices:
                if 0 <= index < len(result.items):
                    titles.setdefault(dedup_key(result.items[index]), section.title)
        return titles

    async def _quality_gate(
        self,
        run: _Run,
        items: list[ExtractedItem],
        token: CancellationToken | None,
    ) -> list[ExtractedItem]:
        """Dedup and review knowledge points.  Both steps degrade to a no-op."""
        await self._transition(
            run, IngestionStage.REVIEWING, f"Quality check on {len(items)} knowledge points..."
        )
        points: list[KnowledgePoint] = [i for i in items if isinstance(i, KnowledgePoint)]

        try:
            deduped = await self._deduplicator.deduplicate(points)
        except Exception as exc:
            self._logger.warning("semantic_dedup_skipped", error=str(exc))
            await self._warn(run, f"Semantic dedup skipped: {exc}")
            deduped = points
        if len(deduped) < len(points):
            await self._log(run, f"Merged {len(points) - len(deduped)} near-duplicate items")
        self._check_cancelled(token)

        async def _on_review_progress(done: int, total: int) -> None:
            await self._log(run, f"Reviewed {done}/{total} knowledge points")

        review = await self._reviewer.review(deduped, on_progress=_on_review_progress, token=token)
        for warning in review.warnings:
            await self._warn(run, warning)

        kept = self._reviewer.filter(deduped, review)
        if len(kept) < len(deduped):
            await self._log(run, f"Filtered out {len(deduped) - len(kept)} low-quality items")
        return list(kept)

    async def _build_outline(self, run: _Run, items: list[ExtractedItem], title: str) -> None:
        """Outline the kept knowledge points.  Failure only costs the outline."""
        if self._outline_generator is None:
            return
        points = [i for i in items if isinstance(i, KnowledgePoint)]
        if not points:
            return
        try:
            outline = await self._outline_generator.generate(points, run.section_titles, title)
        except Exception as exc:  # noqa: BLE001
            self._logger.warning("outline_skipped", error=str(exc))
            await self._warn(run, f"Document outline skipped: {exc}")
            return
        run.outline = outline.model_dump(by_alias=True, mode="json")
        await self._log(run, f"Document outline built with {len(outline.sections)} sections")

    async def _report_question_warnings(self, run: _Run, items: list[ExtractedItem]) -> None:
        questions = [i for i in items if isinstance(i, Question)]
        for order_num, warnings in validate_questions(questions).items():
            for warning in warnings:
                await self._warn(run, f"Q{order_num}: {warning}")

    async def _skip_existing(self, run: _Run, items: list[ExtractedItem]) -> list[ExtractedItem]:
        existing = await self._store.get_chunks(run.state.document_id)
        if not existing:
            return items
        seen = {dedup_key_from_metadata(chunk.metadata) for chunk in existing}
        fresh = [item for item in items if dedup_key(item) not in seen]
        skipped = len(items) - len(fresh)
        if skipped:
            self._logger.info("existing_items_skipped", skipped=skipped, remaining=len(fresh))
            await self._log(run, f"Skipped {skipped} items already in this document")
        return fresh

    async def _embed_and_persist(
        self,
        run: _Run,
        items: list[ExtractedItem],
        token: CancellationToken | None,
    ) -> bool:
        """Embed items in order and flush them in fixed-size batches.

        Returns ``True`` when cancellation stopped the loop early.  The
        pending batch is always flushed before returning.
        """
        total = len(items)
        for index, item in enumerate(items):
            await self._emit(
                run,
                EventName.ITEM,
                {
                    "index": index,
                    "type": item.item_type.value,
                    "data": item.model_dump(by_alias=True, mode="json"),
                },
            )
        await self._emit(run, EventName.PROGRESS, {"current": 0, "total": total})

        pending: list[KnowledgeChunk] = []
        for index, item in enumerate(items):
            if is_cancelled(token):
                self._logger.info("embedding_cancelled", embedded=index, total=total)
                await self._flush(run, pending)
                return True

            content = build_chunk_content(item)
            embedding = await self._embedding_client.embed_one(content)
            if not embedding:
                await self._warn(run, f"Empty embedding for item {index + 1}")
            pending.append(
                KnowledgeChunk(
                    document_id=run.state.document_id,
                    content=content,
                    metadata=build_chunk_metadata(
                        item, section=run.section_titles.get(dedup_key(item))
                    ),
                    embedding=embedding or None,
                )
            )
            await self._emit(run, EventName.PROGRESS, {"current": index + 1, "total": total})

            if len(pending) >= self._save_batch_size or index == total - 1:
                await self._flush(run, pending)
                pending = []
        return False

    async def _flush(self, run: _Run, pending: list[KnowledgeChunk]) -> None:
        if not pending:
            return
        batch_index = run.state.batches_flushed
        try:
            chunk_ids = await self._store.insert_chunks(pending)
        except StoreError as exc:
            self._logger.error(
                "batch_save_failed",
                batch_index=batch_index,
                batch_size=len(pending),
                error=str(exc),
            )
            raise _RunFailed(ErrorCode.SAVE_ERROR, f"Failed to save batch {batch_index + 1}") from exc

        run.state = run.state.model_copy(
            update={
                "chunk_ids": run.state.chunk_ids + tuple(chunk_ids),
                "items_persisted": run.state.items_persisted + len(chunk_ids),
                "batches_flushed": batch_index + 1,
            }
        )
        self._logger.info("batch_saved", batch_index=batch_index, chunks=len(chunk_ids))
        await self._emit(
            run,
            EventName.BATCH_SAVED,
            {"chunkIds": list(chunk_ids), "batchIndex": batch_index},
        )

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------

    async def _finish_ready(self, run: _Run, data: bytes, message: str) -> None:
        await self._transition(run, IngestionStage.READY, message)
        try:
            document = await self._store.get_document(run.state.document_id)
            metadata = dict(document.metadata) if document else {}
            metadata.update(
                {
                    "file_hash": hashlib.sha256(data).hexdigest(),
                    "items_persisted": run.state.items_persisted,
                }
            )
            if run.outline is not None:
                metadata["outline"] = run.outline
            if run.extraction_metadata:
                metadata["extraction"] = run.extraction_metadata
            await self._store.update_document_metadata(run.state.document_id, metadata)
        except StoreError as exc:
            self._logger.warning("document_metadata_update_failed", error=str(exc))

    async def _finish_cancelled(self, run: _Run) -> None:
        message = f"Cancelled. Kept {run.state.items_persisted} saved items."
        await self._transition(run, IngestionStage.CANCELLED, message)

    async def _fail(self, run: _Run, code: ErrorCode, message: str) -> None:
        self._logger.warning(
            "ingestion_failed",
            document_id=run.state.document_id,
            code=code.value,
            error_message=message,
        )
        run.state = run.state.model_copy(
            update={
                "stage": IngestionStage.ERROR,
                "error_code": code.value,
                "error_message": message,
                "completed_at": datetime.now(tz=timezone.utc),
            }
        )
        if run.state.document_id and code != ErrorCode.NOT_FOUND:
            try:
                await self._store.update_document_status(
                    run.state.document_id, DocumentStatus.ERROR, message
                )
            except Exception as exc:
                self._logger.error("document_status_update_failed", error=str(exc))
        await self._emit(run, EventName.ERROR, {"message": message, "code": code.value})

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _transition(self, run: _Run, stage: IngestionStage, message: str) -> None:
        """Move to *stage*, mirror it on the document, and emit ``status``."""
        update: dict[str, Any] = {"stage": stage}
        if stage.is_terminal:
            update["completed_at"] = datetime.now(tz=timezone.utc)
        run.state = run.state.model_copy(update=update)

        # Cancelled runs keep their partial results, so the document is ready.
        doc_status = DocumentStatus.READY if stage.is_terminal else DocumentStatus.PROCESSING
        await self._store.update_document_status(run.state.document_id, doc_status, message)

        self._logger.info("ingestion_stage", stage=stage.value, status_message=message)
        await self._emit(
            run,
            EventName.STATUS,
            {"stage": _STAGE_LABELS.get(stage, stage.value), "message": message},
        )

    def _check_cancelled(self, token: CancellationToken | None) -> None:
        if is_cancelled(token):
            raise _RunCancelled()

    async def _emit(self, run: _Run, name: EventName, data: dict[str, Any]) -> None:
        await self._progress_tracker.emit(run.session_id, ProgressEvent(name=name, data=data))

    async def _log(self, run: _Run, message: str) -> None:
        await self._emit(run, EventName.LOG, {"message": message, "level": "info"})

    async def _warn(self, run: _Run, message: str) -> None:
        run.state = run.state.model_copy(update={"warnings": run.state.warnings + (message,)})
        await self._emit(run, EventName.LOG, {"message": message, "level": "warning"})
