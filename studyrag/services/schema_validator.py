"""Validation and partial recovery of AI-produced JSON payloads.

The AI service is asked for a single JSON object shaped like::

    {"sections": [...], "items": [...], "metadata": {...}}

:func:`validate_extraction` first validates the whole payload.  When that
fails it falls back to item-level recovery: every item and section is
validated on its own, valid ones are kept, and the issues are reported as
warnings.  Recovery never raises.
"""

from __future__ import annotations

import json
import re
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from studyrag.models.items import KnowledgePoint, Question, Section, coerce_source_pages
from studyrag.models.pipeline import ExtractionResult

logger = structlog.get_logger(logger_name=__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)```", re.DOTALL)

DEFAULT_SECTION_TITLE = "General"

__all__ = [
    "DEFAULT_SECTION_TITLE",
    "coerce_source_pages",
    "format_issues",
    "load_json",
    "validate_extraction",
]


class _KnowledgePayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    sections: list[Section] = Field(min_length=1)
    items: list[KnowledgePoint] = Field(min_length=1)
    metadata: dict[str, Any] = Field(default_factory=dict)


class _QuestionPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    sections: list[Section] = Field(min_length=1)
    items: list[Question] = Field(min_length=1)
    metadata: dict[str, Any] = Field(default_factory=dict)


_PAYLOAD_MODELS: dict[type[BaseModel], type[BaseModel]] = {
    KnowledgePoint: _KnowledgePayload,
    Question: _QuestionPayload,
}


def load_json(text: str) -> Any:
    """Parse AI response text as JSON, tolerating a Markdown code fence.

    Raises
    ------
    json.JSONDecodeError
        If no JSON value can be decoded.
    """
    cleaned = text.strip()
    fence_match = _FENCE_RE.search(cleaned)
    if fence_match:
        cleaned = fence_match.group(1).strip()
    return json.loads(cleaned)


def format_issues(exc: ValidationError) -> list[str]:
    """Render each validation issue as ``"path.to.field: message"``."""
    issues: list[str] = []
    for error in exc.errors():
        path = ".".join(str(part) for part in error["loc"])
        issues.append(f"{path}: {error['msg']}" if path else error["msg"])
    return issues


def validate_extraction(raw: Any, item_model: type[KnowledgePoint] | type[Question]) -> ExtractionResult:
    """Validate an extraction payload, recovering valid items on failure.

    Parameters
    ----------
    raw:
        The decoded JSON value.  A bare list is treated as the item list.
    item_model:
        :class:`KnowledgePoint` or :class:`Question`.

    Returns
    -------
    ExtractionResult
        Valid items and sections plus warnings.  When no section survives,
        a single ``General`` section holding every surviving item is
        synthesized so the section list is always well-formed.
    """
    if isinstance(raw, list):
        raw = {"items": raw}

    payload_model = _PAYLOAD_MODELS[item_model]
    try:
        payload = payload_model.model_validate(raw)
    except ValidationError as exc:
        issues = format_issues(exc)
    else:
        return ExtractionResult(
            items=list(payload.items),
            sections=list(payload.sections),
            metadata=dict(payload.metadata),
        )

    warnings = [f"Schema validation: {'; '.join(issues)}"]

    raw_obj: dict[str, Any] = raw if isinstance(raw, dict) else {}
    raw_items = raw_obj.get("items") if isinstance(raw_obj.get("items"), list) else []
    raw_sections = raw_obj.get("sections") if isinstance(raw_obj.get("sections"), list) else []
    metadata = raw_obj.get("metadata") if isinstance(raw_obj.get("metadata"), dict) else {}

    valid_items: list[KnowledgePoint | Question] = []
    index_map: dict[int, int] = {}
    for raw_index, raw_item in enumerate(raw_items):
        try:
            item = item_model.model_validate(raw_item)
        except ValidationError:
            continue
        index_map[raw_index] = len(valid_items)
        valid_items.append(item)

    valid_sections: list[Section] = []
    for raw_section in raw_sections:
        try:
            section = Section.model_validate(raw_section)
        except ValidationError:
            continue
        remapped = [index_map[i] for i in section.item_indices if i in index_map]
        valid_sections.append(section.model_copy(update={"item_indices": remapped}))

    if valid_items:
        warnings.append(f"Recovered {len(valid_items)}/{len(raw_items)} valid items")

    if not valid_sections:
        valid_sections.append(
            Section(
                title=DEFAULT_SECTION_TITLE,
                type="mixed",
                source_pages=[],
                item_indices=list(range(len(valid_items))),
            )
        )
        warnings.append("Created default section for recovered items")

    logger.warning(
        "extraction_partial_recovery",
        item_model=item_model.__name__,
        raw_items=len(raw_items),
        recovered_items=len(valid_items),
        recovered_sections=len(valid_sections),
        issue_count=len(issues),
    )
    return ExtractionResult(
        items=valid_items,
        sections=valid_sections,
        metadata=metadata,
        warnings=warnings,
    )
