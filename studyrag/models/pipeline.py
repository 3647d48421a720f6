"""Ingestion pipeline state models.

:class:`IngestionState` is the single record of one ingestion run.  The
orchestrator never mutates it; each stage transition produces a new copy
via ``model_copy(update={...})`` so any intermediate state can be logged
or returned as-is.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from studyrag.models.items import DocType, ExtractedItem, QualityVerdict, Section


# ---------------------------------------------------------------------------
# IngestionStage: the state machine driving a single document run.
# ---------------------------------------------------------------------------
class IngestionStage(str, Enum):  # noqa: UP042
    """Stages of one ingestion run.

    CREATED → PARSING → EXTRACTING → REVIEWING → EMBEDDING → READY, with
    ERROR reachable from any non-terminal stage and CANCELLED reachable
    whenever cancellation is observed between steps.
    """

    CREATED = "created"
    PARSING = "parsing"
    EXTRACTING = "extracting"
    REVIEWING = "reviewing"
    EMBEDDING = "embedding"
    READY = "ready"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (IngestionStage.READY, IngestionStage.ERROR, IngestionStage.CANCELLED)


class IngestionRequest(BaseModel):
    """What the caller asks the orchestrator to ingest.

    When ``document_id`` is ``None`` a new document record is created and
    announced with a ``document_created`` event.
    """

    model_config = ConfigDict(frozen=True)

    document_id: str | None = None
    doc_type: DocType = DocType.LECTURE
    has_answers: bool = False
    filename: str = "document.pdf"
    course_id: str | None = None


class IngestionState(BaseModel):
    model_config = ConfigDict(frozen=True)

    document_id: str
    doc_type: DocType = DocType.LECTURE
    stage: IngestionStage = IngestionStage.CREATED
    items_total: int = 0
    items_persisted: int = 0
    batches_flushed: int = 0
    chunk_ids: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    error_message: str | None = None
    error_code: str | None = None
    started_at: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))
    completed_at: datetime | None = None


# ---------------------------------------------------------------------------
# Stage results: a value plus the non-fatal warnings collected producing it.
# ---------------------------------------------------------------------------
class ExtractionResult(BaseModel):
    """Output of the content extractor.

    ``items`` holds :class:`KnowledgePoint` or :class:`Question` records,
    in document order.  ``warnings`` are non-fatal diagnostics (recovery
    counts, validation issues, empty responses).
    """

    model_config = ConfigDict(frozen=True)

    items: list[ExtractedItem] = Field(default_factory=list)
    sections: list[Section] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    # True when the response text was present but not decodable JSON.
    parse_failed: bool = False


class ReviewResult(BaseModel):
    """Verdicts collected by the quality reviewer, keyed by absolute index."""

    model_config = ConfigDict(frozen=True)

    verdicts: dict[int, QualityVerdict] = Field(default_factory=dict)
    batches_completed: int = 0
    stopped_early: bool = False
    warnings: list[str] = Field(default_factory=list)
