"""Unit tests for the batched quality reviewer."""

from __future__ import annotations

import json

import pytest

from studyrag.models.items import KnowledgePoint, QualityVerdict
from studyrag.pipeline.cancellation import CancellationToken
from studyrag.services.quality_reviewer import (
    QualityReviewer,
    apply_verdicts,
    build_review_prompt,
    parse_verdicts,
)
from studyrag.utils.errors import LLMError
from tests.conftest import ScriptedLLM, review_payload


def _points(count: int) -> list[KnowledgePoint]:
    return [
        KnowledgePoint(title=f"Point {i}", definition=f"Definition {i}", source_pages=[i + 1])
        for i in range(count)
    ]


def _verdict(index: int, relevant: bool = True, score: int = 8, suggestion: str | None = None) -> QualityVerdict:
    return QualityVerdict(
        index=index,
        is_relevant=relevant,
        quality_score=score,
        suggested_definition=suggestion,
    )


# ======================================================================
# Prompt and parsing
# ======================================================================


class TestPromptAndParsing:
    def test_prompt_uses_absolute_indexes(self) -> None:
        prompt = build_review_prompt(_points(2), start_index=20)
        assert '[20] "Point 0": Definition 0' in prompt
        assert '[21] "Point 1": Definition 1' in prompt

    def test_long_definitions_are_previewed(self) -> None:
        point = KnowledgePoint(title="Long", definition="x" * 250, source_pages=[1])
        prompt = build_review_prompt([point], 0)
        assert "x" * 200 + "..." in prompt
        assert "x" * 201 not in prompt

    def test_parse_object_with_reviews(self) -> None:
        verdicts = parse_verdicts(review_payload([(0, True, 9), (1, False, 2)]))
        assert set(verdicts) == {0, 1}
        assert verdicts[1].is_relevant is False

    def test_parse_bare_array_and_drop_malformed(self) -> None:
        text = json.dumps(
            [
                {"index": 0, "isRelevant": True, "qualityScore": 7},
                {"index": 1, "isRelevant": True, "qualityScore": 42},
                {"isRelevant": True},
            ]
        )
        assert list(parse_verdicts(text)) == [0]

    def test_parse_empty_text(self) -> None:
        assert parse_verdicts("  ") == {}


# ======================================================================
# apply_verdicts
# ======================================================================


class TestApplyVerdicts:
    def test_missing_verdict_passes(self) -> None:
        items = _points(3)
        assert apply_verdicts(items, {}) == items

    def test_irrelevant_and_low_score_are_dropped(self) -> None:
        items = _points(3)
        verdicts = {0: _verdict(0, relevant=False), 1: _verdict(1, score=4), 2: _verdict(2, score=5)}
        assert [p.title for p in apply_verdicts(items, verdicts)] == ["Point 2"]

    def test_suggestion_replaces_definition_below_seven(self) -> None:
        items = _points(2)
        verdicts = {
            0: _verdict(0, score=6, suggestion="Better definition"),
            1: _verdict(1, score=8, suggestion="Ignored"),
        }
        kept = apply_verdicts(items, verdicts)
        assert kept[0].definition == "Better definition"
        assert kept[1].definition == "Definition 1"
        assert items[0].definition == "Definition 0"


# ======================================================================
# QualityReviewer.review
# ======================================================================


class TestQualityReviewer:
    @pytest.mark.asyncio
    async def test_batches_and_progress(self) -> None:
        llm = ScriptedLLM(
            [
                review_payload([(0, True, 9), (1, True, 8)]),
                review_payload([(2, True, 7), (3, False, 1)]),
                review_payload([(4, True, 6)]),
            ]
        )
        progress: list[tuple[int, int]] = []
        reviewer = QualityReviewer(llm, batch_size=2)

        result = await reviewer.review(_points(5), on_progress=lambda d, t: progress.append((d, t)))

        assert llm.call_count == 3
        assert "[2]" in llm.prompts[1] and "[0]" not in llm.prompts[1]
        assert set(result.verdicts) == {0, 1, 2, 3, 4}
        assert result.batches_completed == 3
        assert result.stopped_early is False
        assert progress == [(2, 5), (4, 5), (5, 5)]

    @pytest.mark.asyncio
    async def test_async_progress_callback_is_awaited(self) -> None:
        seen: list[int] = []

        async def on_progress(done: int, total: int) -> None:
            seen.append(done)

        await QualityReviewer(ScriptedLLM(), batch_size=1).review(_points(2), on_progress=on_progress)
        assert seen == [1, 2]

    @pytest.mark.asyncio
    async def test_failed_batch_keeps_earlier_verdicts(self) -> None:
        llm = ScriptedLLM(
            [
                review_payload([(0, True, 9), (1, True, 9)]),
                LLMError(message="upstream down"),
                review_payload([(4, False, 1)]),
            ]
        )
        reviewer = QualityReviewer(llm, batch_size=2)

        result = await reviewer.review(_points(5))

        assert llm.call_count == 2
        assert set(result.verdicts) == {0, 1}
        assert result.stopped_early is True
        assert result.warnings == ["Quality review stopped at item 2: upstream down"]
        # Unreviewed items pass the filter.
        assert len(reviewer.filter(_points(5), result)) == 5

    @pytest.mark.asyncio
    async def test_invalid_json_counts_as_failed_batch(self) -> None:
        result = await QualityReviewer(ScriptedLLM(["{oops"]), batch_size=2).review(_points(3))
        assert result.verdicts == {}
        assert result.stopped_early is True
        assert result.batches_completed == 0

    @pytest.mark.asyncio
    async def test_cancellation_between_batches(self) -> None:
        token = CancellationToken()
        llm = ScriptedLLM([review_payload([(0, False, 1)]), review_payload([(1, False, 1)])])

        def cancel_after_first(done: int, total: int) -> None:
            token.cancel()

        result = await QualityReviewer(llm, batch_size=1).review(
            _points(3), on_progress=cancel_after_first, token=token
        )

        assert llm.call_count == 1
        assert set(result.verdicts) == {0}
        assert result.stopped_early is True

    @pytest.mark.asyncio
    async def test_out_of_batch_indexes_are_ignored(self) -> None:
        llm = ScriptedLLM([review_payload([(0, True, 9), (7, False, 1)])])
        result = await QualityReviewer(llm, batch_size=2).review(_points(2))
        assert set(result.verdicts) == {0}

    @pytest.mark.asyncio
    async def test_filter_uses_configured_thresholds(self) -> None:
        llm = ScriptedLLM([review_payload([(0, True, 6), (1, True, 8)])])
        reviewer = QualityReviewer(llm, min_score=7)
        items = _points(2)

        kept = reviewer.filter(items, await reviewer.review(items))

        assert [p.title for p in kept] == ["Point 1"]
