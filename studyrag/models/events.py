"""Progress events streamed to the caller during ingestion.

Each event is a name plus a JSON-serializable payload.  On the wire (see
:mod:`studyrag.pipeline.event_stream`) an event is one ``event:`` line,
one ``data:`` line, and a blank line.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EventName(str, Enum):  # noqa: UP042
    DOCUMENT_CREATED = "document_created"  # {documentId}
    STATUS = "status"                      # {stage, message}
    ITEM = "item"                          # {index, type, data}
    PROGRESS = "progress"                  # {current, total}
    BATCH_SAVED = "batch_saved"            # {chunkIds, batchIndex}
    ERROR = "error"                        # {message, code}
    LOG = "log"                            # {message, level}


class ErrorCode(str, Enum):  # noqa: UP042
    """Machine-readable codes carried by ``error`` events."""

    INVALID_FILE = "INVALID_FILE"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    EMPTY_PDF = "EMPTY_PDF"
    PDF_PARSE_ERROR = "PDF_PARSE_ERROR"
    EXTRACTION_ERROR = "EXTRACTION_ERROR"
    LLM_QUOTA_EXCEEDED = "LLM_QUOTA_EXCEEDED"
    SAVE_ERROR = "SAVE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ProgressEvent(BaseModel):
    """One named, timestamped notification emitted during ingestion."""

    model_config = ConfigDict(frozen=True)

    name: EventName
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))

    @property
    def is_terminal(self) -> bool:
        """``error`` events and ``status`` events for a finished run end the stream."""
        if self.name == EventName.ERROR:
            return True
        return self.name == EventName.STATUS and self.data.get("stage") in ("complete", "cancelled")
