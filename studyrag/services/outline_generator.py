"""Document outlines for lecture material.

An outline groups a lecture's kept knowledge points into titled sections,
each with a one-sentence description, under a document title and a short
summary.  It is saved in the document metadata after extraction.

Small documents (``local_threshold`` points or fewer, 10 by default) are
outlined locally from the sections the extractor reported.  Larger ones
ask the AI service to regroup the points; any failure there (provider
error, invalid JSON, schema mismatch) falls back to the local outline, so
:meth:`OutlineGenerator.generate` never raises for a bad AI response.
"""

from __future__ import annotations

from collections.abc import Mapping

import structlog
from pydantic import ValidationError

from studyrag.interfaces.llm_provider import ILLMProvider
from studyrag.models.items import DocumentOutline, KnowledgePoint, OutlineSection
from studyrag.services.chunk_content import dedup_key
from studyrag.services.schema_validator import DEFAULT_SECTION_TITLE, load_json

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_LOCAL_THRESHOLD = 10
_PREVIEW_CHARS = 150

_OUTLINE_PROMPT = """You are an academic document outline generator. Create a structured outline for this document.

Document: {title}

Sections found during extraction:
{sections}

Knowledge points ({count} total):
{points}

Generate an outline with:
- title: a descriptive title for the document
- summary: a 1-2 sentence summary of the document content
- sections: group the knowledge points into logical sections, each with
  - title: section heading
  - knowledgePoints: titles of the knowledge points in this section
  - briefDescription: one sentence describing the section

Rules:
- Every knowledge point appears in exactly one section
- Section titles reflect the academic content
- Order sections from introduction through core concepts to advanced topics

Return ONLY a valid JSON object. No markdown, no explanation."""


def _group_by_section(
    points: list[KnowledgePoint], section_titles: Mapping[str, str]
) -> dict[str, list[str]]:
    groups: dict[str, list[str]] = {}
    for point in points:
        section = section_titles.get(dedup_key(point), DEFAULT_SECTION_TITLE)
        groups.setdefault(section, []).append(point.title)
    return groups


def build_local_outline(
    points: list[KnowledgePoint],
    section_titles: Mapping[str, str],
    fallback_title: str,
) -> DocumentOutline:
    """Outline *points* by the extraction section each one came from.

    Sections appear in order of their first point.  The document title is
    the first real section title, or *fallback_title* when every point
    sits in the default section.
    """
    groups = _group_by_section(points, section_titles)
    sections = [
        OutlineSection(
            title=title,
            knowledge_points=members,
            brief_description=f"Covers {', '.join(members)}.",
        )
        for title, members in groups.items()
    ]
    if not sections:
        sections = [
            OutlineSection(title=DEFAULT_SECTION_TITLE, brief_description="No knowledge points kept.")
        ]

    named = [s.title for s in sections if s.title != DEFAULT_SECTION_TITLE]
    return DocumentOutline(
        title=named[0] if named else fallback_title,
        summary=(
            f"Document covering {len(points)} knowledge points "
            f"across {len(sections)} sections."
        ),
        total_knowledge_points=len(points),
        sections=sections,
    )


def build_outline_prompt(
    points: list[KnowledgePoint], section_titles: Mapping[str, str], title: str
) -> str:
    groups = _group_by_section(points, section_titles)
    section_lines = "\n".join(f'- "{name}" ({len(members)} points)' for name, members in groups.items())
    point_lines = "\n".join(f'- "{p.title}": {p.definition[:_PREVIEW_CHARS]}' for p in points)
    return _OUTLINE_PROMPT.format(
        title=title,
        sections=section_lines,
        count=len(points),
        points=point_lines,
    )


class OutlineGenerator:
    """Builds a :class:`DocumentOutline` locally or with the AI service."""

    def __init__(self, llm: ILLMProvider, local_threshold: int = _DEFAULT_LOCAL_THRESHOLD) -> None:
        self._llm = llm
        self._local_threshold = local_threshold

    async def generate(
        self,
        points: list[KnowledgePoint],
        section_titles: Mapping[str, str],
        title: str,
    ) -> DocumentOutline:
        local = build_local_outline(points, section_titles, title)
        if len(points) <= self._local_threshold:
            logger.debug("outline_built_locally", points=len(points), sections=len(local.sections))
            return local

        try:
            text = await self._llm.generate_json(build_outline_prompt(points, section_titles, title))
            raw = load_json(text)
            if not isinstance(raw, dict):
                raise ValueError(f"expected a JSON object, got {type(raw).__name__}")
            outline = DocumentOutline.model_validate({**raw, "totalKnowledgePoints": len(points)})
        except ValidationError as exc:
            logger.warning("outline_validation_failed", error_count=exc.error_count())
            return local
        except Exception as exc:  # noqa: BLE001
            logger.warning("outline_generation_failed", error=str(exc))
            return local

        logger.info("outline_generated", points=len(points), sections=len(outline.sections))
        return outline
