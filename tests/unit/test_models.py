"""Unit tests for item, document, pipeline and event models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from studyrag.models.document import PageText, ParsedDocument
from studyrag.models.events import EventName, ProgressEvent
from studyrag.models.items import (
    ItemType,
    KnowledgePoint,
    QualityVerdict,
    Question,
    Section,
    coerce_source_pages,
)
from studyrag.models.pipeline import IngestionStage, IngestionState


# ======================================================================
# coerce_source_pages
# ======================================================================


class TestCoerceSourcePages:
    def test_dash_range_expands(self) -> None:
        assert coerce_source_pages("2-5") == [2, 3, 4, 5]

    def test_en_dash_range_expands(self) -> None:
        assert coerce_source_pages("3–4") == [3, 4]

    def test_comma_separated_string(self) -> None:
        assert coerce_source_pages("1, 2, 3") == [1, 2, 3]

    def test_whitespace_separated_string(self) -> None:
        assert coerce_source_pages("4 5  6") == [4, 5, 6]

    def test_single_number(self) -> None:
        assert coerce_source_pages(3) == [3]

    def test_none_is_empty(self) -> None:
        assert coerce_source_pages(None) == []

    def test_list_filters_non_positive_and_non_numeric(self) -> None:
        assert coerce_source_pages([1, "2", 0, -3, "x", 2.5, 4.0]) == [1, 2, 4]

    def test_dict_is_empty(self) -> None:
        assert coerce_source_pages({"page": 1}) == []

    def test_bool_is_rejected(self) -> None:
        assert coerce_source_pages(True) == []

    def test_reversed_range_is_empty(self) -> None:
        assert coerce_source_pages("5-2") == []

    def test_range_of_exactly_200_pages_is_allowed(self) -> None:
        assert len(coerce_source_pages("1-200")) == 200

    def test_range_wider_than_200_pages_is_empty(self) -> None:
        assert coerce_source_pages("1-201") == []

    def test_zero_is_dropped(self) -> None:
        assert coerce_source_pages(0) == []


# ======================================================================
# KnowledgePoint / Question
# ======================================================================


class TestKnowledgePoint:
    def test_accepts_camel_case_and_normalizes_pages(self) -> None:
        point = KnowledgePoint.model_validate(
            {
                "title": "Entropy",
                "definition": "Expected information content.",
                "keyFormulas": ["H = -sum p log p"],
                "keyConcepts": None,
                "sourcePages": "3, 1, 3",
            }
        )
        assert point.key_formulas == ["H = -sum p log p"]
        assert point.key_concepts == []
        assert point.source_pages == [1, 3]
        assert point.item_type == ItemType.KNOWLEDGE_POINT

    def test_empty_source_pages_is_invalid(self) -> None:
        with pytest.raises(ValidationError):
            KnowledgePoint(title="A", definition="B", source_pages=[])

    def test_uncoercible_source_pages_is_invalid(self) -> None:
        with pytest.raises(ValidationError):
            KnowledgePoint(title="A", definition="B", source_pages="n/a")

    def test_empty_title_is_invalid(self) -> None:
        with pytest.raises(ValidationError):
            KnowledgePoint(title="", definition="B", source_pages=[1])

    def test_is_frozen(self) -> None:
        point = KnowledgePoint(title="A", definition="B", source_pages=[1])
        with pytest.raises(ValidationError):
            point.title = "C"  # type: ignore[misc]

    def test_dump_by_alias_is_camel_case(self) -> None:
        point = KnowledgePoint(title="A", definition="B", source_pages=[2])
        dumped = point.model_dump(by_alias=True)
        assert dumped["sourcePages"] == [2]
        assert "keyFormulas" in dumped


class TestQuestion:
    def test_score_is_accepted_as_points(self) -> None:
        q = Question.model_validate(
            {"orderNum": 1, "content": "What is 2 + 2?", "score": 4, "sourcePages": [1]}
        )
        assert q.points == 4

    def test_difficulty_is_lowercased(self) -> None:
        q = Question.model_validate(
            {"orderNum": 1, "content": "Why?", "difficulty": "Hard", "sourcePages": [1]}
        )
        assert q.difficulty == "hard"

    def test_unknown_difficulty_is_invalid(self) -> None:
        with pytest.raises(ValidationError):
            Question.model_validate(
                {"orderNum": 1, "content": "Why?", "difficulty": "extreme", "sourcePages": [1]}
            )

    def test_options_dict_becomes_ordered_list(self) -> None:
        q = Question.model_validate(
            {
                "orderNum": 2,
                "content": "Pick one",
                "options": {"A": "red", "B": "blue"},
                "sourcePages": [1],
            }
        )
        assert q.options == ["red", "blue"]

    def test_null_answer_fields_become_blank(self) -> None:
        q = Question.model_validate(
            {
                "orderNum": 1,
                "content": "Prove it",
                "referenceAnswer": None,
                "explanation": None,
                "sourcePages": [1],
            }
        )
        assert q.reference_answer == ""
        assert q.explanation == ""
        assert q.item_type == ItemType.QUESTION

    def test_negative_points_is_invalid(self) -> None:
        with pytest.raises(ValidationError):
            Question(order_num=1, content="x", points=-1, source_pages=[1])

    def test_order_num_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            Question(order_num=0, content="x", source_pages=[1])


class TestSectionAndVerdict:
    def test_section_pages_are_coerced(self) -> None:
        section = Section.model_validate({"title": "Part A", "sourcePages": "1-3"})
        assert section.source_pages == [1, 2, 3]
        assert section.type == "mixed"

    def test_verdict_score_bounds(self) -> None:
        with pytest.raises(ValidationError):
            QualityVerdict(index=0, is_relevant=True, quality_score=11)
        with pytest.raises(ValidationError):
            QualityVerdict(index=0, is_relevant=True, quality_score=0)

    def test_verdict_null_issues(self) -> None:
        verdict = QualityVerdict.model_validate(
            {"index": 1, "isRelevant": False, "qualityScore": 3, "issues": None}
        )
        assert verdict.issues == []
        assert verdict.suggested_definition is None


# ======================================================================
# Documents, pipeline state, events
# ======================================================================


class TestParsedDocument:
    def test_total_text_strips_pages(self) -> None:
        parsed = ParsedDocument(
            pages=[PageText(page=1, text="  \n"), PageText(page=2, text=" body ")],
            total_pages=2,
        )
        assert parsed.total_text == "body"

    def test_whitespace_only_document_has_no_text(self) -> None:
        parsed = ParsedDocument(pages=[PageText(page=1, text=" \t\n")], total_pages=1)
        assert parsed.total_text == ""


class TestIngestionState:
    @pytest.mark.parametrize(
        "stage,terminal",
        [
            (IngestionStage.CREATED, False),
            (IngestionStage.EMBEDDING, False),
            (IngestionStage.READY, True),
            (IngestionStage.ERROR, True),
            (IngestionStage.CANCELLED, True),
        ],
    )
    def test_terminal_stages(self, stage: IngestionStage, terminal: bool) -> None:
        assert stage.is_terminal is terminal

    def test_model_copy_leaves_original_untouched(self) -> None:
        state = IngestionState(document_id="doc-1")
        moved = state.model_copy(update={"stage": IngestionStage.PARSING})
        assert state.stage == IngestionStage.CREATED
        assert moved.stage == IngestionStage.PARSING


class TestProgressEvent:
    def test_error_is_terminal(self) -> None:
        event = ProgressEvent(name=EventName.ERROR, data={"message": "x", "code": "INTERNAL_ERROR"})
        assert event.is_terminal

    @pytest.mark.parametrize("stage", ["complete", "cancelled"])
    def test_finished_status_is_terminal(self, stage: str) -> None:
        assert ProgressEvent(name=EventName.STATUS, data={"stage": stage}).is_terminal

    def test_intermediate_status_is_not_terminal(self) -> None:
        assert not ProgressEvent(name=EventName.STATUS, data={"stage": "embedding"}).is_terminal

    def test_batch_saved_is_not_terminal(self) -> None:
        assert not ProgressEvent(name=EventName.BATCH_SAVED, data={}).is_terminal
