"""Local embeddings through Ollama's OpenAI-compatible ``/v1`` endpoint.

Defaults to ``nomic-embed-text``, whose 768-dim output matches the
default ``embedding_dimension``.  Used when no OpenAI key is configured.
"""

from __future__ import annotations

import httpx
import openai
import structlog

from studyrag.config.settings import Settings
from studyrag.interfaces.embedding_provider import IEmbeddingProvider
from studyrag.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)

# Ollama rejects very large input arrays in one request.
_MAX_INPUTS_PER_REQUEST = 512


class NomicEmbeddingProvider(IEmbeddingProvider):
    """Embeds chunk and query text with a model served by a local Ollama."""

    def __init__(self, settings: Settings) -> None:
        self._ollama_url = settings.ollama_base_url.rstrip("/")
        self._model = settings.ollama_embedding_model
        self._dimension = settings.embedding_dimension
        self._client = openai.AsyncOpenAI(base_url=f"{self._ollama_url}/v1", api_key="ollama")

    async def _embed_request(self, inputs: list[str]) -> list[list[float]]:
        try:
            response = await self._client.embeddings.create(input=inputs, model=self._model)
        except openai.APIError as exc:
            raise EmbeddingError(
                message=f"Ollama embedding request failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return [row.embedding for row in response.data]

    async def embed(self, texts: list[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for offset in range(0, len(texts), _MAX_INPUTS_PER_REQUEST):
            chunk = texts[offset : offset + _MAX_INPUTS_PER_REQUEST]
            vectors.extend(await self._embed_request(chunk))
            logger.debug("ollama_embeddings_created", model=self._model, inputs=len(chunk))
        return vectors

    async def embed_single(self, text: str) -> list[float]:
        vectors = await self._embed_request([text])
        return vectors[0] if vectors else []

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "nomic_embedding"

    def is_available(self) -> bool:
        """Check ``/api/tags``; any transport failure means unavailable."""
        if not self._ollama_url:
            return False
        try:
            return httpx.get(f"{self._ollama_url}/api/tags", timeout=3.0).status_code == 200
        except httpx.HTTPError:
            return False
