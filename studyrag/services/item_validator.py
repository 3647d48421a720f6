"""Heuristic checks on extracted questions.

Produces human-readable warnings per question, keyed by ``order_num``.
These never reject a question; the orchestrator forwards them as ``log``
events so an editor can review the flagged items.
"""

from __future__ import annotations

import re

from studyrag.models.items import Question

_DISPLAY_MATH_RE = re.compile(r"\$\$.*?\$\$", re.DOTALL)
_MIN_CONTENT_CHARS = 20


def validate_questions(questions: list[Question]) -> dict[int, list[str]]:
    """Return ``{order_num: [warning, ...]}`` for every question."""
    result: dict[int, list[str]] = {q.order_num: [] for q in questions}
    first_seen: dict[str, int] = {}

    for i, question in enumerate(questions):
        warnings: list[str] = []
        content = question.content.strip()

        if i > 0:
            expected = questions[i - 1].order_num + 1
            if question.order_num != expected:
                warnings.append(f"Question number gap: expected {expected}, got {question.order_num}")

        if not content:
            warnings.append("Empty question content")

        if not question.reference_answer.strip():
            warnings.append("No reference answer")

        inline = _DISPLAY_MATH_RE.sub("", question.content)
        if inline.count("$") % 2 != 0:
            warnings.append("Possible broken KaTeX formula (unmatched $)")

        if 0 < len(content) < _MIN_CONTENT_CHARS:
            warnings.append("Suspiciously short content")

        normalized = content.lower()
        if normalized:
            if normalized in first_seen:
                warnings.append(f"Possible duplicate of Q{first_seen[normalized]}")
            else:
                first_seen[normalized] = question.order_num

        result[question.order_num] = warnings

    return result
