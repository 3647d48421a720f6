"""Abstract base class for generative-AI providers.

StudyRAG uses exactly one generation call type: a prompt in, JSON-mode
text out, at temperature 0.  Extraction, quality review, and reranking
all go through :meth:`ILLMProvider.generate_json`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations: OpenAILLMProvider, OllamaLLMProvider
# Located in: studyrag/providers/llm/
class ILLMProvider(ABC):
    """Contract for the content-generation service."""

    @abstractmethod
    async def generate_json(self, prompt: str, temperature: float = 0.0) -> str:
        """Generate a structured-JSON response for *prompt*.

        Parameters
        ----------
        prompt:
            The complete instruction plus data for the model.
        temperature:
            Sampling temperature; the pipeline always passes ``0.0``.

        Returns
        -------
        str
            The raw response text.  May be empty or not valid JSON; callers
            treat both as handled outcomes rather than protocol errors.

        Raises
        ------
        studyrag.utils.errors.RateLimitError
            If the provider rejects the call for quota or rate reasons.
        studyrag.utils.errors.LLMError
            If the API call fails for any other reason.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier such as ``"openai"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` when the provider is configured and usable."""
