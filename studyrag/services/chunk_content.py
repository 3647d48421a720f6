"""Serialization of extracted items into persisted chunk text and metadata.

The chunk ``content`` is what gets embedded and what retrieval pastes into
AI prompts, so it is plain readable Markdown:

    ## Gradient Descent
    Iteratively moves parameters against the gradient ...

    **Formulas:**
    - $\\theta \\leftarrow \\theta - \\eta \\nabla L$

Questions render as ``## Q{n}: {content}`` followed by lettered options,
the reference answer, and the explanation when present.
"""

from __future__ import annotations

from typing import Any

from studyrag.models.items import ExtractedItem, KnowledgePoint, Question


def _bullet_block(heading: str, values: list[str]) -> list[str]:
    if not values:
        return []
    return ["", f"**{heading}:**", *(f"- {v}" for v in values)]


def build_knowledge_point_content(point: KnowledgePoint) -> str:
    parts = [f"## {point.title}", point.definition]
    parts += _bullet_block("Formulas", point.key_formulas)
    parts += _bullet_block("Key Concepts", point.key_concepts)
    parts += _bullet_block("Examples", point.examples)
    return "\n".join(parts)


def build_question_content(question: Question, context: str | None = None) -> str:
    parts: list[str] = []
    if context:
        parts.append(f"Context: {context}")
    parts.append(f"## Q{question.order_num}: {question.content}")
    if question.options:
        lettered = "\n".join(f"{chr(65 + i)}. {opt}" for i, opt in enumerate(question.options))
        parts.append(f"\nOptions:\n{lettered}")
    if question.reference_answer:
        parts.append(f"\nReference Answer: {question.reference_answer}")
    if question.explanation:
        parts.append(f"\nExplanation: {question.explanation}")
    return "\n".join(parts)


def build_chunk_content(item: ExtractedItem) -> str:
    """Render any extracted item as chunk text."""
    if isinstance(item, KnowledgePoint):
        return build_knowledge_point_content(item)
    return build_question_content(item)


def build_chunk_metadata(item: ExtractedItem, **extra: Any) -> dict[str, Any]:
    """Type tag, the item's fields (camelCase), and ``page`` for citations.

    ``type`` is always the item type.  A question's own type tag
    (``choice``, ``proof``, ...) is stored as ``questionType``.  ``page`` is
    the first source page; retrieval renders it as ``(Page N)``.
    """
    metadata: dict[str, Any] = item.model_dump(by_alias=True, mode="json")
    if isinstance(item, Question):
        metadata["questionType"] = metadata.pop("type", "")
    metadata["type"] = item.item_type.value
    if item.source_pages:
        metadata["page"] = item.source_pages[0]
    metadata.update({k: v for k, v in extra.items() if v is not None})
    return metadata


def dedup_key(item: ExtractedItem) -> str:
    """Normalized identity used to skip items a document already holds."""
    text = item.title if isinstance(item, KnowledgePoint) else item.content
    return text.strip().lower()


def dedup_key_from_metadata(metadata: dict[str, Any]) -> str:
    """Same key as :func:`dedup_key`, read back from stored chunk metadata."""
    if metadata.get("type") == "question":
        return str(metadata.get("content", "")).strip().lower()
    return str(metadata.get("title", "")).strip().lower()
