"""Custom exception hierarchy for StudyRAG.

All application exceptions inherit from :class:`StudyRagError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "sqlite", "pymupdf") caused the failure.

The hierarchy is organized by pipeline stage:

    StudyRagError  (base -- catch-all for any studyrag error)
    +-- InvalidDocumentError     (upload shape / file signature / size)
    +-- DocumentParseError       (PDF text extraction)
    +-- ExtractionError          (AI content extraction)
    +-- LLMError                 (any LLM API call failure)
    |   +-- RateLimitError       (provider quota or rate limit exceeded)
    +-- EmbeddingError           (embedding API failure)
    +-- StoreError               (knowledge store read / write failure)
    +-- PipelineError            (orchestration / stage transitions)
    +-- ConfigurationError       (startup / missing config)
"""

from __future__ import annotations

import re


class StudyRagError(Exception):
    """Base exception for all StudyRAG errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  ``__str__`` prefixes the provider name in brackets for
    structured log output, e.g. ``[openai] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Input errors
# ---------------------------------------------------------------------------

class InvalidDocumentError(StudyRagError):
    """Raised when an uploaded file fails shape, size, or signature checks."""

    def __init__(
        self,
        message: str = "File is not a valid PDF",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class DocumentParseError(StudyRagError):
    """Raised when page text cannot be extracted from a document."""

    def __init__(
        self,
        message: str = "Failed to parse PDF content",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# AI service errors
# ---------------------------------------------------------------------------

class ExtractionError(StudyRagError):
    """Raised when structured content extraction cannot be completed."""

    def __init__(
        self,
        message: str = "Failed to extract content from PDF",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class LLMError(StudyRagError):
    """Raised when an LLM API call fails (timeout, auth, bad response)."""

    def __init__(
        self,
        message: str = "LLM request failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(LLMError):
    """Raised when an AI provider rejects a call for quota or rate reasons."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self.retry_after = retry_after


class EmbeddingError(StudyRagError):
    """Raised when the embedding service fails to return vectors."""

    def __init__(
        self,
        message: str = "Embedding request failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Persistence / orchestration errors
# ---------------------------------------------------------------------------

class StoreError(StudyRagError):
    """Raised when the knowledge store rejects a read or write."""

    def __init__(
        self,
        message: str = "Knowledge store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class PipelineError(StudyRagError):
    """Raised when the ingestion pipeline encounters an unrecoverable error."""

    def __init__(
        self,
        message: str = "Pipeline processing failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(StudyRagError):
    """Raised when required configuration is missing or invalid."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Classification helpers
# ---------------------------------------------------------------------------

_QUOTA_PATTERN = re.compile(r"quota|rate.?limit|429|RESOURCE_EXHAUSTED", re.IGNORECASE)


def is_quota_error(exc: BaseException) -> bool:
    """Return ``True`` when *exc* signals an exhausted AI quota or rate limit.

    Matches :class:`RateLimitError`, any exception carrying an HTTP
    ``status_code`` / ``status`` of 429, and messages that mention quota
    or rate limiting.
    """
    if isinstance(exc, RateLimitError):
        return True
    for attr in ("status_code", "status"):
        if getattr(exc, attr, None) == 429:
            return True
    return bool(_QUOTA_PATTERN.search(str(exc)))
