"""Extracted item models: knowledge points, questions, and section groupings.

These are the records the AI extraction step produces and every later
stage consumes.  Field names are snake_case in Python; the AI service and
the progress stream speak camelCase, handled by the shared alias generator
(``populate_by_name=True`` accepts either form on input).

All models are frozen.  Stages that "change" an item (semantic merge,
definition substitution after review) build a new instance with
``model_copy(update={...})``.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

_RANGE_RE = re.compile(r"^(\d+)\s*[-–]\s*(\d+)$")
_SPLIT_RE = re.compile(r"[,\s]+")

# Widest dash range accepted for a page reference ("1-200" is the limit).
MAX_PAGE_RANGE = 200


class DocType(str, Enum):  # noqa: UP042
    """Kinds of uploaded documents, each with its own extraction prompt."""

    LECTURE = "lecture"
    EXAM = "exam"
    ASSIGNMENT = "assignment"


class ItemType(str, Enum):  # noqa: UP042
    KNOWLEDGE_POINT = "knowledge_point"
    QUESTION = "question"


def _to_number(token: Any) -> float | None:
    if isinstance(token, bool):
        return None
    if isinstance(token, (int, float)):
        return float(token)
    try:
        return float(str(token).strip())
    except ValueError:
        return None


def coerce_source_pages(value: Any) -> list[int]:
    """Coerce a loosely-typed page reference into a list of positive ints.

    Accepted shapes::

        3            -> [3]
        [1, "2", 3]  -> [1, 2, 3]
        "1, 2 3"     -> [1, 2, 3]
        "2-5"        -> [2, 3, 4, 5]

    Anything else (``None``, dicts, reversed or over-wide ranges) becomes
    ``[]``.  Non-numeric and non-positive entries are dropped silently.
    """
    if isinstance(value, bool):
        return []
    if isinstance(value, (int, float)):
        return [int(value)] if value > 0 and float(value).is_integer() else []
    if isinstance(value, (list, tuple)):
        tokens: list[Any] = list(value)
    elif isinstance(value, str):
        trimmed = value.strip()
        match = _RANGE_RE.match(trimmed)
        if match:
            start, end = int(match.group(1)), int(match.group(2))
            if start > 0 and end >= start and end - start < MAX_PAGE_RANGE:
                return list(range(start, end + 1))
            return []
        tokens = [t for t in _SPLIT_RE.split(trimmed) if t]
    else:
        return []

    pages: list[int] = []
    for token in tokens:
        number = _to_number(token)
        if number is None or number <= 0 or not number.is_integer():
            continue
        pages.append(int(number))
    return pages


class _ItemModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


# ---------------------------------------------------------------------------
# KnowledgePoint: one concept extracted from lecture material.
# ---------------------------------------------------------------------------
class KnowledgePoint(_ItemModel):
    """A single concept with its definition and supporting material."""

    title: str = Field(min_length=1, description="Concise concept title.")
    definition: str = Field(min_length=1, description="Explanation of the concept.")
    key_formulas: list[str] = Field(default_factory=list, description="Formulas, in order.")
    key_concepts: list[str] = Field(default_factory=list, description="Related terms.")
    examples: list[str] = Field(default_factory=list, description="Concrete examples.")
    source_pages: list[int] = Field(
        min_length=1,
        description="Ascending, de-duplicated page numbers the concept came from.",
    )

    @field_validator("key_formulas", "key_concepts", "examples", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("source_pages", mode="before")
    @classmethod
    def _coerce_pages(cls, value: Any) -> list[int]:
        return sorted(set(coerce_source_pages(value)))

    @property
    def item_type(self) -> ItemType:
        return ItemType.KNOWLEDGE_POINT


# ---------------------------------------------------------------------------
# Question: one exam or assignment question.
# ---------------------------------------------------------------------------
class Question(_ItemModel):
    """A question with its options, answer, and grading metadata."""

    order_num: int = Field(ge=1, description="1-based sequence number within the document.")
    type: str = Field(default="", description="Question type tag (choice, proof, ...).")
    content: str = Field(min_length=1, description="Question text in Markdown.")
    options: list[str] = Field(default_factory=list, description="Choice options, if any.")
    reference_answer: str = Field(default="", description="Reference answer, if present.")
    explanation: str = Field(default="", description="Worked explanation, if present.")
    points: float = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("points", "score"),
        description="Point value of the question.",
    )
    difficulty: Literal["easy", "medium", "hard"] = "medium"
    section: str = Field(default="General", description="Title of the parent section.")
    source_pages: list[int] = Field(min_length=1)

    @field_validator("options", mode="before")
    @classmethod
    def _coerce_options(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, dict):
            return [str(v) for v in value.values()]
        return value

    @field_validator("difficulty", mode="before")
    @classmethod
    def _lower_difficulty(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("reference_answer", "explanation", "type", mode="before")
    @classmethod
    def _none_as_blank(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("source_pages", mode="before")
    @classmethod
    def _coerce_pages(cls, value: Any) -> list[int]:
        return sorted(set(coerce_source_pages(value)))

    @property
    def item_type(self) -> ItemType:
        return ItemType.QUESTION


ExtractedItem = Union[KnowledgePoint, Question]


class Section(_ItemModel):
    """A grouping of extracted items (chapter, question block, ...)."""

    title: str = Field(min_length=1)
    type: str = "mixed"
    source_pages: list[int] = Field(default_factory=list)
    item_indices: list[int] = Field(default_factory=list)

    @field_validator("source_pages", mode="before")
    @classmethod
    def _coerce_pages(cls, value: Any) -> list[int]:
        return sorted(set(coerce_source_pages(value)))


# ---------------------------------------------------------------------------
# QualityVerdict: the reviewer's judgement on one item.
# ---------------------------------------------------------------------------
class QualityVerdict(_ItemModel):
    """Relevance and quality score for the item at ``index``.

    ``index`` is the item's absolute position in the reviewer's input list,
    not a persisted ID; items have no ID until they are stored.
    """

    index: int = Field(ge=0)
    is_relevant: bool
    quality_score: int = Field(ge=1, le=10)
    issues: list[str] = Field(default_factory=list)
    suggested_definition: str | None = None

    @field_validator("issues", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value


# ---------------------------------------------------------------------------
# DocumentOutline: section-level summary of a lecture's knowledge points.
# ---------------------------------------------------------------------------
class OutlineSection(_ItemModel):
    title: str = Field(min_length=1)
    knowledge_points: list[str] = Field(default_factory=list)
    brief_description: str = Field(min_length=1)


class DocumentOutline(_ItemModel):
    """Stored under ``outline`` in the document metadata."""

    title: str = Field(min_length=1)
    summary: str = Field(min_length=1)
    total_knowledge_points: int = Field(default=0, ge=0)
    sections: list[OutlineSection] = Field(min_length=1)
