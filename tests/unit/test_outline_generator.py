"""Unit tests for document outline generation."""

from __future__ import annotations

import json

import pytest

from studyrag.models.items import KnowledgePoint
from studyrag.services.outline_generator import (
    OutlineGenerator,
    build_local_outline,
    build_outline_prompt,
)
from studyrag.utils.errors import LLMError
from tests.conftest import ScriptedLLM


def _points(*titles: str) -> list[KnowledgePoint]:
    return [
        KnowledgePoint(title=t, definition=f"What {t} means, in a sentence.", source_pages=[i + 1])
        for i, t in enumerate(titles)
    ]


_SECTIONS = {
    "entropy": "Information Theory",
    "mutual information": "Information Theory",
    "kl divergence": "Divergences",
}


def _ai_outline(*section_titles: str) -> str:
    return json.dumps(
        {
            "title": "Information Theory Basics",
            "summary": "Core measures of information.",
            "sections": [
                {"title": t, "knowledgePoints": [], "briefDescription": f"About {t}."}
                for t in section_titles
            ],
        }
    )


class TestLocalOutline:
    def test_groups_points_by_extraction_section(self) -> None:
        points = _points("Entropy", "KL Divergence", "Mutual Information")

        outline = build_local_outline(points, _SECTIONS, fallback_title="lecture3.pdf")

        assert outline.title == "Information Theory"
        assert [s.title for s in outline.sections] == ["Information Theory", "Divergences"]
        assert outline.sections[0].knowledge_points == ["Entropy", "Mutual Information"]
        assert outline.sections[1].brief_description == "Covers KL Divergence."
        assert outline.total_knowledge_points == 3
        assert outline.summary == "Document covering 3 knowledge points across 2 sections."

    def test_unsectioned_points_fall_under_general_with_fallback_title(self) -> None:
        outline = build_local_outline(_points("Bayes Rule"), {}, fallback_title="week1.pdf")

        assert outline.title == "week1.pdf"
        assert [s.title for s in outline.sections] == ["General"]

    def test_no_points_still_yields_a_section(self) -> None:
        outline = build_local_outline([], {}, fallback_title="empty.pdf")
        assert outline.total_knowledge_points == 0
        assert len(outline.sections) == 1

    def test_camel_case_dump(self) -> None:
        dumped = build_local_outline(_points("Entropy"), _SECTIONS, "x").model_dump(by_alias=True)
        assert dumped["totalKnowledgePoints"] == 1
        assert dumped["sections"][0]["briefDescription"] == "Covers Entropy."


class TestOutlinePrompt:
    def test_lists_sections_and_truncated_definitions(self) -> None:
        point = KnowledgePoint(title="Entropy", definition="x" * 400, source_pages=[1])
        prompt = build_outline_prompt([point], _SECTIONS, "lecture3.pdf")

        assert "Document: lecture3.pdf" in prompt
        assert '- "Information Theory" (1 points)' in prompt
        assert f'- "Entropy": {"x" * 150}' in prompt
        assert "x" * 151 not in prompt


class TestOutlineGenerator:
    @pytest.mark.asyncio
    async def test_small_documents_skip_the_ai_call(self) -> None:
        llm = ScriptedLLM()
        outline = await OutlineGenerator(llm).generate(_points("Entropy"), _SECTIONS, "x")

        assert llm.call_count == 0
        assert outline.sections[0].title == "Information Theory"

    @pytest.mark.asyncio
    async def test_large_documents_use_the_ai_outline(self) -> None:
        llm = ScriptedLLM([_ai_outline("Foundations", "Applications")])
        points = _points("Entropy", "KL Divergence", "Mutual Information")

        outline = await OutlineGenerator(llm, local_threshold=2).generate(points, _SECTIONS, "x")

        assert llm.call_count == 1
        assert outline.title == "Information Theory Basics"
        assert [s.title for s in outline.sections] == ["Foundations", "Applications"]
        assert outline.total_knowledge_points == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            LLMError(message="upstream down"),
            "not json at all",
            "[1, 2, 3]",
            json.dumps({"title": "T", "summary": "S", "sections": []}),
        ],
    )
    async def test_ai_failures_fall_back_to_local_outline(self, response) -> None:
        llm = ScriptedLLM([response])
        points = _points("Entropy", "KL Divergence", "Mutual Information")

        outline = await OutlineGenerator(llm, local_threshold=2).generate(points, _SECTIONS, "x")

        assert llm.call_count == 1
        assert outline.title == "Information Theory"
        assert outline.summary.startswith("Document covering 3 knowledge points")
