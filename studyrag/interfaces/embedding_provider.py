"""Abstract base class for text-embedding providers."""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations: OpenAIEmbeddingProvider, NomicEmbeddingProvider
# Located in: studyrag/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services.

    Vectors feed semantic deduplication, chunk persistence, and query-time
    hybrid search, so every implementation must return vectors of one fixed
    dimension.
    """

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            Strings to embed.  Implementations handle any per-call batch
            limit internally.

        Returns
        -------
        list[list[float]]
            Vectors in the same order as *texts*.

        Raises
        ------
        studyrag.utils.errors.EmbeddingError
            If the embedding API call fails.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Embed one text.

        Returns an empty list when the service returns no data; that empty
        vector is the documented "no result" value, not an error.
        """

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of produced vectors."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier such as ``"openai_embedding"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` when the provider is configured and reachable."""
