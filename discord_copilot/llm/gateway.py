"""
Model gateway — the single place that talks to the hosted chat-completion API.

Both the response generator and the summarizer go through ModelGateway.complete():

    assemble_context() / summary prompt  →  ordered role-tagged messages
                                                  ↓
                                  ModelGateway.complete(messages)
                                                  ↓
                                     LiteLLM acompletion() (no streaming, no tools)
                                                  ↓
                                             LLMResponse

Design decisions:
- Uses LiteLLM for provider abstraction, so the deployment can point at Gemini,
  OpenAI, a local Ollama model or any OpenAI-compatible endpoint (api_base)
  by changing configuration only.
- The gateway is stateless; every call sends the full message list.
- An empty completion raises LLMError. Callers never have to distinguish
  "the model said nothing" from "the call failed".
"""

from __future__ import annotations

from typing import Any

from litellm import acompletion

from discord_copilot.config.logging import get_logger
from discord_copilot.config.settings import LLMSettings
from discord_copilot.llm.models import LLMError, LLMResponse, TokenUsage

logger = get_logger(__name__)


class ModelGateway:
    """
    Thin async client for chat completions.

    Args:
        settings: LLM configuration (model, api_key, optional api_base,
                  temperature and max_tokens)
    """

    def __init__(self, settings: LLMSettings):
        self._settings = settings

    @property
    def model(self) -> str:
        return self._settings.model

    def _call_kwargs(self, messages: list[dict[str, Any]]) -> dict[str, Any]:
        call_kwargs: dict[str, Any] = {
            "model": self._settings.model,
            "messages": messages,
            "api_key": self._settings.api_key,
        }
        # Optional knobs are only sent when configured so provider defaults apply
        if self._settings.api_base:
            call_kwargs["api_base"] = self._settings.api_base
        if self._settings.temperature is not None:
            call_kwargs["temperature"] = self._settings.temperature
        if self._settings.max_tokens is not None:
            call_kwargs["max_tokens"] = self._settings.max_tokens
        return call_kwargs

    async def complete(self, messages: list[dict[str, Any]]) -> LLMResponse:
        """
        Request a single completion for an ordered message list.

        Args:
            messages: Role-tagged messages, e.g. [{"role": "system", "content": ...}, ...]

        Returns:
            LLMResponse with stripped, non-empty text

        Raises:
            ValueError: If messages is empty
            LLMError: If the API key is missing, the API call fails, or the
                      model returns an empty completion
        """
        if not messages:
            raise ValueError("At least one message is required")

        # Missing key fails here rather than as a provider 401
        if not self._settings.api_key:
            raise LLMError("API key not configured. Set LLM__API_KEY in your environment.")

        try:
            response = await acompletion(**self._call_kwargs(messages))
        except Exception as e:
            raise LLMError(f"LLM API call failed: {e}", cause=e) from e

        choices = getattr(response, "choices", None) or []
        content = choices[0].message.content if choices else None
        text = (content or "").strip()
        if not text:
            raise LLMError("AI returned empty response")

        usage = getattr(response, "usage", None)
        logger.debug(
            f"Completion received from {response.model} "
            f"({len(text)} chars, {getattr(usage, 'total_tokens', '?')} tokens)"
        )

        return LLMResponse(
            text=text,
            model=response.model or self._settings.model,
            usage=TokenUsage(
                prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
                completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
            ),
        )
