"""OpenAI-compatible LLM provider adapter.

Wraps ``openai.AsyncOpenAI`` to implement :class:`ILLMProvider`.  When a
custom ``openai_base_url`` is configured (TogetherAI, Groq, Fireworks, ...)
the client points there instead of the default OpenAI endpoint.

Every call asks for ``response_format={"type": "json_object"}``.  A
``None`` message body is returned as ``""``: the callers handle empty
output as a normal outcome.
"""

from __future__ import annotations

import openai
import structlog

from studyrag.config.settings import Settings
from studyrag.interfaces.llm_provider import ILLMProvider
from studyrag.utils.errors import LLMError, RateLimitError

logger = structlog.get_logger(logger_name=__name__)

_SYSTEM_PROMPT = "You are a precise academic content processor. Respond with a single JSON value."


class OpenAILLMProvider(ILLMProvider):
    """LLM provider backed by an OpenAI-compatible chat completions API.

    Uses ``gpt-4o-mini`` unless ``openai_text_model`` overrides it.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._api_key = settings.openai_api_key

        client_kwargs: dict = {
            "api_key": self._api_key,
            "timeout": openai.Timeout(settings.llm_timeout_seconds, connect=5.0),
        }
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        # AsyncOpenAI refuses an empty key, so no client until one is configured.
        self._client: openai.AsyncOpenAI | None = (
            openai.AsyncOpenAI(**client_kwargs) if self._api_key else None
        )
        self._text_model = settings.openai_text_model or "gpt-4o-mini"
        self._provider_label = (
            "openai-compatible" if settings.openai_base_url else "openai"
        )

    # ------------------------------------------------------------------
    # ILLMProvider implementation
    # ------------------------------------------------------------------

    async def generate_json(self, prompt: str, temperature: float = 0.0) -> str:
        if self._client is None:
            raise LLMError(
                message=f"{self._provider_label} API key is not configured",
                provider_name=self.get_provider_name(),
            )
        try:
            response = await self._client.chat.completions.create(
                model=self._text_model,
                messages=[
                    {"role": "system", "content": _SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=temperature,
                response_format={"type": "json_object"},
            )
        except openai.RateLimitError as exc:
            raise RateLimitError(
                message=f"{self._provider_label} rate limit or quota exceeded: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APITimeoutError as exc:
            raise LLMError(
                message=f"{self._provider_label} timed out",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise LLMError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        content = response.choices[0].message.content if response.choices else None
        logger.info(
            "openai_generate_json",
            model=self._text_model,
            provider=self._provider_label,
            tokens=response.usage.total_tokens if response.usage else None,
            response_chars=len(content or ""),
        )
        return content or ""

    def get_provider_name(self) -> str:
        return self._provider_label

    def is_available(self) -> bool:
        return bool(self._api_key)
