"""AI quality review of extracted knowledge points.

Items are reviewed in fixed-size batches.  Each batch prompt lists items
by their *absolute* index (``[N]``, offset by the items in earlier
batches) with a 200-character definition preview, and the AI answers
with one verdict per index.  Verdicts are validated one at a time; a
malformed verdict is dropped without failing its batch.

Partial failure: when a batch call raises, the reviewer logs it, starts
no further batches, and returns what it has.  Cancellation is observed
only between batches.

Index alignment: verdict indexes refer to positions in the list passed
to :meth:`QualityReviewer.review`; :func:`apply_verdicts` must be given
that same list, unreordered.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable
from typing import Any

import structlog
from pydantic import ValidationError

from studyrag.interfaces.llm_provider import ILLMProvider
from studyrag.models.items import KnowledgePoint, QualityVerdict
from studyrag.models.pipeline import ReviewResult
from studyrag.pipeline.cancellation import CancellationToken, is_cancelled
from studyrag.services.schema_validator import load_json

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_BATCH_SIZE = 20
_DEFAULT_MIN_SCORE = 5
_DEFAULT_SUGGESTION_BELOW = 7
_PREVIEW_CHARS = 200

ProgressCallback = Callable[[int, int], Any]

_REVIEW_PROMPT = """You are an academic content quality reviewer. Evaluate these extracted knowledge points.

Scoring rubric:
- 10: Precise, complete definition with conditions, formulas/examples
- 7-9: Mostly accurate, may lack some detail
- 4-6: Vague or incomplete, needs improvement
- 1-3: Invalid (classroom info, TOC entries, overly generic)

Mark isRelevant=false for:
- Classroom management info (deadlines, attendance)
- Table of contents entries or chapter headings
- Non-academic content

For each knowledge point, return:
- index: the number in brackets [N]
- isRelevant: boolean
- qualityScore: integer 1-10
- issues: array of specific issues (empty if none)
- suggestedDefinition: improved definition (only if score < 7 and it is fixable)

Return ONLY a JSON object of the form {{"reviews": [...]}}. No markdown.

Knowledge points:
{points}"""


def build_review_prompt(batch: list[KnowledgePoint], start_index: int) -> str:
    lines = []
    for offset, point in enumerate(batch):
        preview = point.definition[:_PREVIEW_CHARS]
        if len(point.definition) > _PREVIEW_CHARS:
            preview += "..."
        lines.append(f'[{start_index + offset}] "{point.title}": {preview}')
    return _REVIEW_PROMPT.format(points="\n\n".join(lines))


def parse_verdicts(text: str) -> dict[int, QualityVerdict]:
    """Parse a review response into verdicts, dropping malformed entries.

    Accepts a bare JSON array or an object holding the array under
    ``reviews``.

    Raises
    ------
    json.JSONDecodeError
        If *text* is not JSON at all.
    """
    raw = load_json(text) if text.strip() else []
    if isinstance(raw, dict):
        raw = raw.get("reviews", raw.get("items", []))
    entries = raw if isinstance(raw, list) else []

    verdicts: dict[int, QualityVerdict] = {}
    dropped = 0
    for entry in entries:
        try:
            verdict = QualityVerdict.model_validate(entry)
        except ValidationError:
            dropped += 1
            continue
        verdicts[verdict.index] = verdict
    if dropped:
        logger.debug("review_verdicts_dropped", dropped=dropped, kept=len(verdicts))
    return verdicts


def apply_verdicts(
    items: list[KnowledgePoint],
    verdicts: dict[int, QualityVerdict],
    min_score: int = _DEFAULT_MIN_SCORE,
    suggestion_below: int = _DEFAULT_SUGGESTION_BELOW,
) -> list[KnowledgePoint]:
    """Filter and improve *items* using index-keyed *verdicts*.

    - no verdict: kept unchanged
    - not relevant, or score below *min_score*: dropped
    - score below *suggestion_below* with a suggestion: definition replaced
    """
    kept: list[KnowledgePoint] = []
    for index, item in enumerate(items):
        verdict = verdicts.get(index)
        if verdict is None:
            kept.append(item)
            continue
        if not verdict.is_relevant or verdict.quality_score < min_score:
            continue
        if verdict.suggested_definition and verdict.quality_score < suggestion_below:
            kept.append(item.model_copy(update={"definition": verdict.suggested_definition}))
        else:
            kept.append(item)
    return kept


class QualityReviewer:
    """Scores knowledge points in batches and filters them by verdict."""

    def __init__(
        self,
        llm: ILLMProvider,
        batch_size: int = _DEFAULT_BATCH_SIZE,
        min_score: int = _DEFAULT_MIN_SCORE,
        suggestion_below: int = _DEFAULT_SUGGESTION_BELOW,
    ) -> None:
        self._llm = llm
        self._batch_size = max(1, batch_size)
        self._min_score = min_score
        self._suggestion_below = suggestion_below

    async def review(
        self,
        items: list[KnowledgePoint],
        on_progress: ProgressCallback | None = None,
        token: CancellationToken | None = None,
    ) -> ReviewResult:
        """Collect verdicts for *items*, batch by batch.

        Never raises for a failed batch: the failure is logged, recorded as
        a warning, and the verdicts gathered so far are returned.
        """
        verdicts: dict[int, QualityVerdict] = {}
        warnings: list[str] = []
        batches_completed = 0
        stopped_early = False
        total = len(items)

        for start in range(0, total, self._batch_size):
            if is_cancelled(token):
                logger.info("quality_review_cancelled", reviewed=start, total=total)
                stopped_early = True
                break

            batch = items[start : start + self._batch_size]
            try:
                text = await self._llm.generate_json(build_review_prompt(batch, start), temperature=0.0)
                batch_verdicts = parse_verdicts(text)
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "quality_review_batch_failed",
                    start_index=start,
                    batch_size=len(batch),
                    error=str(exc),
                )
                warnings.append(f"Quality review stopped at item {start}: {exc}")
                stopped_early = True
                break

            # Ignore indexes outside this batch.
            for index, verdict in batch_verdicts.items():
                if start <= index < start + len(batch):
                    verdicts[index] = verdict
            batches_completed += 1

            if on_progress is not None:
                outcome = on_progress(min(start + self._batch_size, total), total)
                if inspect.isawaitable(outcome):
                    await outcome

        logger.info(
            "quality_review_complete",
            items=total,
            verdicts=len(verdicts),
            batches=batches_completed,
            stopped_early=stopped_early,
        )
        return ReviewResult(
            verdicts=verdicts,
            batches_completed=batches_completed,
            stopped_early=stopped_early,
            warnings=warnings,
        )

    def filter(self, items: list[KnowledgePoint], result: ReviewResult) -> list[KnowledgePoint]:
        """Apply this reviewer's thresholds to *items* using *result*."""
        kept = apply_verdicts(items, result.verdicts, self._min_score, self._suggestion_below)
        logger.info("quality_filter_applied", input_items=len(items), kept=len(kept))
        return kept
