"""AI content extraction from page-indexed document text.

Builds one prompt from every page of the document, makes exactly one
JSON-mode call to the LLM provider, and turns the response into typed
items:

    lecture            -> KnowledgePoint records
    exam / assignment  -> Question records

Only the AI call itself raises.  Empty output, undecodable JSON, and
schema failures come back as an :class:`ExtractionResult` with warnings;
schema failures additionally go through item-level recovery in
:mod:`studyrag.services.schema_validator`.  Callers that need smaller AI
calls must split the pages before calling :meth:`ContentExtractor.extract`.
"""

from __future__ import annotations

import json

import structlog

from studyrag.interfaces.llm_provider import ILLMProvider
from studyrag.models.document import PageText
from studyrag.models.items import DocType, KnowledgePoint, Question
from studyrag.models.pipeline import ExtractionResult
from studyrag.pipeline.cancellation import CancellationToken, is_cancelled
from studyrag.services.schema_validator import load_json, validate_extraction

logger = structlog.get_logger(logger_name=__name__)


# ------------------------------------------------------------------
# Prompts
# ------------------------------------------------------------------

_LECTURE_PROMPT = """You are an expert academic content analyzer. Analyze the following lecture content and extract structured knowledge points.

For each SECTION (chapter or topic of the lecture):
- title: Section heading
- type: "lecture"
- sourcePages: Array of page numbers this section spans
- itemIndices: Array of 0-based indices into "items" belonging to this section

For each ITEM (knowledge point):
- title: A clear, concise title for the concept
- definition: A comprehensive explanation/definition
- keyFormulas: Relevant mathematical formulas in KaTeX (empty array if none)
- keyConcepts: Related key terms and concepts (empty array if none)
- examples: Concrete examples mentioned (empty array if none)
- sourcePages: Array of page numbers where this concept appears (never empty)

Rules:
- Skip classroom logistics (deadlines, attendance, grading policy) and table-of-contents pages.
- Merge repeated explanations of the same concept into one item.

Return ONLY a valid JSON object with "sections" and "items" arrays. No markdown, no explanation.

Lecture content ({page_count} pages):
{pages_text}"""

_QUESTION_PROMPT = """You are an expert academic {kind} content analyzer.

Analyze the following document and extract ALL questions with their full structure.

For each SECTION (group questions by topic, chapter, or question type):
- title: Section heading (e.g. "Part A: Multiple Choice")
- type: Dominant question type (choice/fill_blank/short_answer/calculation/proof/essay/mixed)
- sourcePages: Array of page numbers this section spans
- itemIndices: Array of 0-based item indices belonging to this section

For each ITEM (question):
- orderNum: Sequential number (1, 2, 3...)
- content: Full question text in Markdown (KaTeX for math: $...$ inline, $$...$$ block)
- options: Array of option texts for multiple choice (empty array if not multiple choice)
- referenceAnswer: {answer_rule}
- explanation: Step-by-step solution explanation if present (empty string if none)
- points: Point value (0 if not specified)
- type: Question type (choice/fill_blank/short_answer/calculation/proof/essay)
- difficulty: Estimated difficulty (easy/medium/hard)
- section: Title of the parent section
- sourcePages: Array of page numbers where this question appears (never empty)

Also return "metadata" with: title, totalPoints, totalQuestions (as stated in the document, 0 if not stated).

Critical rules:
- Extract EVERY question; do not skip any.
- Each referenceAnswer must belong to THAT question. Match separate answer sections by question number.
- Sub-parts sharing one context stay in ONE item; independent sub-parts become separate items.
- Do NOT include instructions or headers as questions.

Return ONLY a valid JSON object with "sections", "items" and "metadata". No markdown, no explanation.

Document ({page_count} pages):
{pages_text}"""

_ANSWERS_PRESENT = "The reference answer from the document (the document contains answers)"
_ANSWERS_ABSENT = "The reference answer if present in the document (empty string if none)"


def format_pages(pages: list[PageText]) -> str:
    """Render pages as ``[Page N]`` blocks separated by blank lines."""
    return "\n\n".join(f"[Page {p.page}]\n{p.text}" for p in pages)


def build_extraction_prompt(pages: list[PageText], doc_type: DocType, has_answers: bool = False) -> str:
    pages_text = format_pages(pages)
    if doc_type == DocType.LECTURE:
        return _LECTURE_PROMPT.format(page_count=len(pages), pages_text=pages_text)
    return _QUESTION_PROMPT.format(
        kind="exam" if doc_type == DocType.EXAM else "assignment/homework",
        answer_rule=_ANSWERS_PRESENT if has_answers else _ANSWERS_ABSENT,
        page_count=len(pages),
        pages_text=pages_text,
    )


class ContentExtractor:
    """Turns page text into validated knowledge points or questions."""

    def __init__(self, llm: ILLMProvider) -> None:
        self._llm = llm

    async def extract(
        self,
        pages: list[PageText],
        doc_type: DocType = DocType.LECTURE,
        has_answers: bool = False,
        token: CancellationToken | None = None,
    ) -> ExtractionResult:
        """Extract items from *pages* with a single AI call.

        Returns an empty result without calling the AI service when *token*
        is already cancelled.

        Raises
        ------
        studyrag.utils.errors.LLMError
            Propagated unchanged from the provider, including
            :class:`~studyrag.utils.errors.RateLimitError`.
        """
        if is_cancelled(token):
            logger.info("extraction_skipped_cancelled", doc_type=doc_type.value)
            return ExtractionResult()

        item_model = KnowledgePoint if doc_type == DocType.LECTURE else Question
        prompt = build_extraction_prompt(pages, doc_type, has_answers)

        logger.info(
            "extraction_start",
            doc_type=doc_type.value,
            pages=len(pages),
            prompt_chars=len(prompt),
        )
        text = await self._llm.generate_json(prompt, temperature=0.0)

        if not text.strip():
            logger.warning("extraction_empty_response", provider=self._llm.get_provider_name())
            return ExtractionResult(
                warnings=[f"{self._llm.get_provider_name()} returned empty response"],
            )

        try:
            raw = load_json(text)
        except json.JSONDecodeError:
            # Length only; the body can be very large.
            logger.warning("extraction_invalid_json", response_chars=len(text))
            return ExtractionResult(
                warnings=[f"AI service returned invalid JSON ({len(text)} chars)"],
                parse_failed=True,
            )

        result = validate_extraction(raw, item_model)
        logger.info(
            "extraction_complete",
            doc_type=doc_type.value,
            items=len(result.items),
            sections=len(result.sections),
            warnings=len(result.warnings),
        )
        return result
