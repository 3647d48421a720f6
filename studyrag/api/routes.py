"""FastAPI routes for StudyRAG.

Service dependencies are resolved from ``app.state`` (populated by
``main.build_components``) through ``Depends`` with the ``Annotated`` pattern.

    Endpoint                                Method  Description
    /api/v1/documents                       POST    Create a document record
    /api/v1/documents                       GET     List documents (optional course filter)
    /api/v1/documents/{id}                  GET     Document with status
    /api/v1/documents/{id}/chunks           GET     Persisted chunks (no embeddings)
    /api/v1/documents/{id}                  DELETE  Delete document and its chunks
    /api/v1/documents/parse                 POST    Upload PDF → SSE progress stream
    /api/v1/ingestions/{session_id}/status  GET     Poll an ingestion's progress
    /api/v1/retrieval/context               POST    Assemble grounding context
    /api/v1/health                          GET     Health check + provider status
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.responses import StreamingResponse

from studyrag import __version__
from studyrag.api.schemas import (
    ChunkListResponse,
    ChunkResponse,
    CreateDocumentRequest,
    DeleteResponse,
    DocumentListResponse,
    DocumentResponse,
    ErrorResponse,
    HealthResponse,
    IngestionStatusResponse,
    RetrievalRequest,
    RetrievalResponse,
)
from studyrag.interfaces.knowledge_store import IKnowledgeStore
from studyrag.models.document import Document
from studyrag.models.events import ErrorCode, EventName, ProgressEvent
from studyrag.models.items import DocType
from studyrag.models.pipeline import IngestionRequest
from studyrag.pipeline.cancellation import CancellationToken
from studyrag.pipeline.event_stream import EventStream, format_sse
from studyrag.pipeline.orchestrator import IngestionOrchestrator
from studyrag.pipeline.progress_tracker import ProgressTracker
from studyrag.services.retrieval_assembler import RetrievalAssembler
from studyrag.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

_PDF_CONTENT_TYPES = frozenset({"application/pdf", "application/x-pdf"})
_UPLOAD_CHUNK_SIZE = 64 * 1024
_SSE_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}


# ---------------------------------------------------------------------------
# Dependency injection helpers: resolve singletons from app.state
# ---------------------------------------------------------------------------


def _get_store(request: Request) -> IKnowledgeStore:
    return request.app.state.store


def _get_orchestrator(request: Request) -> IngestionOrchestrator:
    return request.app.state.orchestrator


def _get_progress_tracker(request: Request) -> ProgressTracker:
    return request.app.state.progress_tracker


def _get_retrieval(request: Request) -> RetrievalAssembler:
    return request.app.state.retrieval


StoreDep = Annotated[IKnowledgeStore, Depends(_get_store)]
OrchestratorDep = Annotated[IngestionOrchestrator, Depends(_get_orchestrator)]
TrackerDep = Annotated[ProgressTracker, Depends(_get_progress_tracker)]
RetrievalDep = Annotated[RetrievalAssembler, Depends(_get_retrieval)]


async def _require_document(store: IKnowledgeStore, document_id: str) -> Document:
    document = await store.get_document(document_id)
    if document is None:
        raise HTTPException(status_code=404, detail=f"Document not found: {document_id}")
    return document


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@router.post(
    "/documents",
    response_model=DocumentResponse,
    status_code=201,
    summary="Create a document record",
)
async def create_document(body: CreateDocumentRequest, store: StoreDep) -> DocumentResponse:
    document = await store.create_document(
        Document(
            id=str(uuid.uuid4()),
            name=body.name,
            doc_type=body.doc_type,
            course_id=body.course_id,
        )
    )
    _logger.info("document_created", document_id=document.id, doc_type=document.doc_type.value)
    return DocumentResponse.from_document(document)


@router.get(
    "/documents",
    response_model=DocumentListResponse,
    summary="List documents",
)
async def list_documents(
    store: StoreDep,
    course_id: Annotated[str | None, Query()] = None,
) -> DocumentListResponse:
    documents = await store.list_documents(course_id=course_id)
    return DocumentListResponse(
        documents=[DocumentResponse.from_document(d) for d in documents],
        total=len(documents),
    )


@router.get(
    "/documents/{document_id}",
    response_model=DocumentResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get a document and its ingestion status",
)
async def get_document(document_id: str, store: StoreDep) -> DocumentResponse:
    return DocumentResponse.from_document(await _require_document(store, document_id))


@router.get(
    "/documents/{document_id}/chunks",
    response_model=ChunkListResponse,
    responses={404: {"model": ErrorResponse}},
    summary="List a document's persisted chunks",
)
async def get_document_chunks(document_id: str, store: StoreDep) -> ChunkListResponse:
    await _require_document(store, document_id)
    chunks = await store.get_chunks(document_id)
    return ChunkListResponse(
        document_id=document_id,
        chunks=[ChunkResponse.from_chunk(c) for c in chunks],
        total=len(chunks),
    )


@router.delete(
    "/documents/{document_id}",
    response_model=DeleteResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Delete a document and all of its chunks",
)
async def delete_document(document_id: str, store: StoreDep) -> DeleteResponse:
    deleted = await store.delete_document(document_id)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Document not found: {document_id}")
    _logger.info("document_deleted", document_id=document_id)
    return DeleteResponse(id=document_id, deleted=True)


# ---------------------------------------------------------------------------
# Ingestion (SSE)
# ---------------------------------------------------------------------------


async def _single_error(message: str, code: ErrorCode) -> AsyncIterator[str]:
    yield format_sse(ProgressEvent(name=EventName.ERROR, data={"message": message, "code": code.value}))


def _error_stream(message: str, code: ErrorCode) -> StreamingResponse:
    _logger.warning("parse_request_rejected", code=code.value, error_message=message)
    return StreamingResponse(
        _single_error(message, code),
        media_type="text/event-stream",
        headers=_SSE_HEADERS,
    )


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


async def _read_upload(file: UploadFile, limit: int) -> bytes | None:
    """Read the upload in chunks; ``None`` once it exceeds *limit* bytes."""
    chunks: list[bytes] = []
    total_size = 0
    while True:
        chunk = await file.read(_UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        total_size += len(chunk)
        if total_size > limit:
            return None
        chunks.append(chunk)
    return b"".join(chunks)


@router.post(
    "/documents/parse",
    summary="Upload a PDF and stream ingestion progress as server-sent events",
    response_class=StreamingResponse,
)
async def parse_document(
    request: Request,
    orchestrator: OrchestratorDep,
    tracker: TrackerDep,
    file: Annotated[UploadFile | None, File()] = None,
    document_id: Annotated[str | None, Form()] = None,
    doc_type: Annotated[str, Form()] = DocType.LECTURE.value,
    has_answers: Annotated[bool, Form()] = False,
    course_id: Annotated[str | None, Form()] = None,
) -> StreamingResponse:
    """Validate the upload, then run ingestion while streaming its events.

    Upload problems are reported as a single ``error`` event so clients
    handle every failure on the same channel.  Closing the connection
    cancels the run; batches already saved are kept.
    """
    if file is None:
        return _error_stream("No file provided", ErrorCode.INVALID_FILE)
    if (file.content_type or "") not in _PDF_CONTENT_TYPES:
        return _error_stream("Only PDF files are supported", ErrorCode.INVALID_FILE)
    try:
        parsed_type = DocType(doc_type)
    except ValueError:
        return _error_stream("Invalid upload data", ErrorCode.VALIDATION_ERROR)
    if document_id is not None and not _is_uuid(document_id):
        return _error_stream("Invalid upload data", ErrorCode.VALIDATION_ERROR)

    max_size = request.app.state.settings.max_file_size_bytes
    data = await _read_upload(file, max_size)
    if data is None:
        return _error_stream(
            f"File too large (max {max_size // (1024 * 1024)}MB)", ErrorCode.FILE_TOO_LARGE
        )

    ingestion = IngestionRequest(
        document_id=document_id,
        doc_type=parsed_type,
        has_answers=has_answers,
        filename=file.filename or "document.pdf",
        course_id=course_id,
    )
    session_id = str(uuid.uuid4())
    token = CancellationToken()
    _logger.info(
        "parse_request_accepted",
        session_id=session_id,
        document_id=document_id,
        doc_type=parsed_type.value,
        size_bytes=len(data),
    )

    stream = EventStream(tracker, session_id, token)
    return StreamingResponse(
        stream.stream(lambda: orchestrator.ingest(ingestion, data, token, session_id=session_id)),
        media_type="text/event-stream",
        headers={**_SSE_HEADERS, "X-Session-Id": session_id},
    )


@router.get(
    "/ingestions/{session_id}/status",
    response_model=IngestionStatusResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Poll an ingestion's latest progress",
)
async def get_ingestion_status(session_id: str, tracker: TrackerDep) -> IngestionStatusResponse:
    status = tracker.get_status(session_id)
    if status is None:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return IngestionStatusResponse(session_id=session_id, **status)


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------


@router.post(
    "/retrieval/context",
    response_model=RetrievalResponse,
    summary="Assemble citation-annotated context for a query",
)
async def retrieve_context(body: RetrievalRequest, retrieval: RetrievalDep) -> RetrievalResponse:
    context = await retrieval.retrieve_context(
        body.query,
        filter=body.filter,
        match_count=body.match_count,
    )
    return RetrievalResponse(context=context)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Application health check",
)
async def health_check(request: Request) -> HealthResponse:
    """Return application health, version, and provider availability."""
    providers: dict[str, Any] = dict(getattr(request.app.state, "provider_registry", {}))

    store = getattr(request.app.state, "store", None)
    if store is not None:
        try:
            await store.list_documents()
            providers["store"] = True
        except Exception as exc:
            _logger.warning("health_store_check_failed", error=str(exc))
            providers["store"] = False

    critical_ok = providers.get("llm", False) and providers.get("store", False)
    if critical_ok and providers.get("embedding", False):
        status = "healthy"
    elif critical_ok:
        status = "degraded"
    else:
        status = "unhealthy"

    return HealthResponse(status=status, version=__version__, providers=providers)
