"""Unit tests for vector math and log-context helpers."""

from __future__ import annotations

import pytest
import structlog

from studyrag.utils.logging import bind_log_context
from studyrag.utils.vectors import cosine_similarity, reciprocal_rank_fusion


class TestCosineSimilarity:
    def test_identical_and_orthogonal(self) -> None:
        assert cosine_similarity([1.0, 2.0], [2.0, 4.0]) == pytest.approx(1.0)
        assert cosine_similarity([1.0, 0.0], [0.0, 3.0]) == pytest.approx(0.0)

    @pytest.mark.parametrize(
        ("a", "b"),
        [([1.0], [1.0, 0.0]), ([], []), ([0.0, 0.0], [1.0, 1.0])],
    )
    def test_degenerate_inputs_are_zero(self, a, b) -> None:
        assert cosine_similarity(a, b) == 0.0


class TestReciprocalRankFusion:
    def test_items_in_both_rankings_win(self) -> None:
        fused = reciprocal_rank_fusion([["a", "b"], ["b", "c"]], k=60)
        assert fused["b"] == pytest.approx(1 / 62 + 1 / 61)
        assert max(fused, key=fused.get) == "b"
        assert fused["c"] == pytest.approx(1 / 62)


class TestBindLogContext:
    def test_values_are_bound_only_inside_block(self) -> None:
        with bind_log_context(session_id="s1", document_id="d1"):
            bound = structlog.contextvars.get_contextvars()
            assert (bound["session_id"], bound["document_id"]) == ("s1", "d1")
        assert "session_id" not in structlog.contextvars.get_contextvars()

    def test_nested_blocks_restore_outer_values(self) -> None:
        with bind_log_context(session_id="outer"):
            with bind_log_context(session_id="inner"):
                assert structlog.contextvars.get_contextvars()["session_id"] == "inner"
            assert structlog.contextvars.get_contextvars()["session_id"] == "outer"
