"""Embedding calls with bounded retry and exponential backoff.

Wraps an :class:`IEmbeddingProvider`.  Only transient failures are
retried (provider-reported embedding errors, transport errors, timeouts);
anything else propagates on the first attempt.  The delay before attempt
``n + 1`` is ``base_delay * 2 ** (n - 1)``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx
import structlog

from studyrag.interfaces.embedding_provider import IEmbeddingProvider
from studyrag.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_MAX_ATTEMPTS = 3
_DEFAULT_BASE_DELAY = 1.0

_TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    EmbeddingError,
    httpx.TransportError,
    asyncio.TimeoutError,
    ConnectionError,
)

T = TypeVar("T")


class EmbeddingClient:
    """Retrying front door to the embedding provider."""

    def __init__(
        self,
        provider: IEmbeddingProvider,
        max_attempts: int = _DEFAULT_MAX_ATTEMPTS,
        base_delay: float = _DEFAULT_BASE_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._provider = provider
        self._max_attempts = max(1, max_attempts)
        self._base_delay = base_delay
        self._sleep = sleep

    @property
    def provider_name(self) -> str:
        return self._provider.get_provider_name()

    async def embed_one(self, text: str) -> list[float]:
        """Embed one text; an empty list means the service returned no data."""
        vector = await self._with_retry(lambda: self._provider.embed_single(text), "embed_one")
        return list(vector or [])

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in one provider call, preserving order."""
        if not texts:
            return []
        vectors = await self._with_retry(lambda: self._provider.embed(texts), "embed_many")
        if len(vectors) != len(texts):
            raise EmbeddingError(
                message=f"Expected {len(texts)} embeddings, got {len(vectors)}",
                provider_name=self.provider_name,
            )
        return vectors

    async def _with_retry(self, call: Callable[[], Awaitable[T]], operation: str) -> T:
        for attempt in range(1, self._max_attempts + 1):
            try:
                return await call()
            except _TRANSIENT_ERRORS as exc:
                if attempt >= self._max_attempts:
                    logger.error(
                        "embedding_retries_exhausted",
                        operation=operation,
                        attempts=attempt,
                        error=str(exc),
                    )
                    raise
                delay = self._base_delay * (2 ** (attempt - 1))
                logger.warning(
                    "embedding_retry",
                    operation=operation,
                    attempt=attempt,
                    backoff_s=delay,
                    error=str(exc),
                )
                await self._sleep(delay)
        raise AssertionError("unreachable")  # pragma: no cover
