"""StudyRAG domain models, re-exported for ``from studyrag.models import X``.

    - items.py    : KnowledgePoint, Question, Section, QualityVerdict, outlines
    - document.py : Document, KnowledgeChunk, page text, retrieval hits
    - pipeline.py : ingestion state machine and stage results
    - events.py   : progress events and error codes
"""

from __future__ import annotations

from studyrag.models.document import (
    Document,
    DocumentStatus,
    KnowledgeChunk,
    PageText,
    ParsedDocument,
    RetrievedChunk,
)
from studyrag.models.events import ErrorCode, EventName, ProgressEvent
from studyrag.models.items import (
    DocType,
    DocumentOutline,
    ExtractedItem,
    ItemType,
    KnowledgePoint,
    OutlineSection,
    QualityVerdict,
    Question,
    Section,
    coerce_source_pages,
)
from studyrag.models.pipeline import (
    ExtractionResult,
    IngestionRequest,
    IngestionStage,
    IngestionState,
    ReviewResult,
)

__all__ = [
    "DocType",
    "Document",
    "DocumentOutline",
    "DocumentStatus",
    "ErrorCode",
    "EventName",
    "ExtractedItem",
    "ExtractionResult",
    "IngestionRequest",
    "IngestionStage",
    "IngestionState",
    "ItemType",
    "KnowledgeChunk",
    "KnowledgePoint",
    "OutlineSection",
    "PageText",
    "ParsedDocument",
    "ProgressEvent",
    "QualityVerdict",
    "Question",
    "RetrievedChunk",
    "ReviewResult",
    "Section",
    "coerce_source_pages",
]
