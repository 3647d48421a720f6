"""Ollama LLM provider adapter.

Talks to a local Ollama server through its OpenAI-compatible ``/v1``
endpoint, so it reuses the ``openai`` client with a different base URL.
Lets the whole pipeline run offline with no API key.
"""

from __future__ import annotations

import httpx
import openai
import structlog

from studyrag.config.settings import Settings
from studyrag.interfaces.llm_provider import ILLMProvider
from studyrag.utils.errors import LLMError

logger = structlog.get_logger(logger_name=__name__)


class OllamaLLMProvider(ILLMProvider):
    """LLM provider backed by a local Ollama server (``llama3.1`` by default)."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._base_url = settings.ollama_base_url
        # Ollama ignores the key, but the SDK requires a non-empty value.
        self._client = openai.AsyncOpenAI(
            base_url=f"{self._base_url.rstrip('/')}/v1",
            api_key="ollama",
            timeout=openai.Timeout(settings.llm_timeout_seconds, connect=5.0),
        )
        self._text_model = settings.ollama_text_model

    async def generate_json(self, prompt: str, temperature: float = 0.0) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=self._text_model,
                messages=[{"role": "user", "content": prompt}],
                temperature=temperature,
                response_format={"type": "json_object"},
            )
        except openai.APIError as exc:
            raise LLMError(
                message=f"Ollama API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        content = response.choices[0].message.content if response.choices else None
        logger.info("ollama_generate_json", model=self._text_model, response_chars=len(content or ""))
        return content or ""

    def get_provider_name(self) -> str:
        return "ollama"

    def is_available(self) -> bool:
        """Return ``True`` if the Ollama server answers on ``/api/tags``."""
        if not self._base_url:
            return False
        try:
            response = httpx.get(f"{self._base_url.rstrip('/')}/api/tags", timeout=3.0)
            return response.status_code == 200
        except (httpx.ConnectError, httpx.TimeoutException):
            return False
