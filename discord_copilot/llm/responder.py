"""
Chat reply generation.

Assembles the prompt (instructions → summary → message), calls the model
gateway and enforces a hard timeout. The timeout uses asyncio.timeout(), so
when it fires the in-flight request is cancelled rather than left running in
the background with its result thrown away.
"""

from __future__ import annotations

import asyncio

from discord_copilot.config.logging import get_logger
from discord_copilot.llm.context import assemble_context
from discord_copilot.llm.gateway import ModelGateway
from discord_copilot.llm.models import GenerationTimeoutError

logger = get_logger(__name__)


class ResponseGenerator:
    """
    Generate a reply for one user message.

    Args:
        gateway: Model gateway used for the completion
        timeout: Seconds to wait before abandoning the request (default: 30)
    """

    def __init__(self, gateway: ModelGateway, timeout: float = 30.0):
        self._gateway = gateway
        self._timeout = timeout

    @property
    def timeout(self) -> float:
        return self._timeout

    async def generate(
        self,
        system_instructions: str,
        prior_summary: str | None,
        user_message: str,
    ) -> str:
        """
        Return the model's reply, trimmed.

        Raises:
            GenerationTimeoutError: If no reply arrives within the timeout
            LLMError: If the model call fails or returns nothing
        """
        messages = assemble_context(system_instructions, prior_summary, user_message)
        try:
            async with asyncio.timeout(self._timeout):
                response = await self._gateway.complete(messages)
        except TimeoutError as e:
            raise GenerationTimeoutError(
                f"AI request timed out after {self._timeout:g}s", cause=e
            ) from e

        logger.debug(f"Reply generated ({response.usage.total_tokens} tokens, {response.model})")
        return response.text.strip()
