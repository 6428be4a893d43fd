"""
Conversation summarizer.

Condenses the previous rolling summary and the latest exchange into a new,
shorter summary. The ~200 word cap is an instruction to the model, not
something enforced here.
"""

from __future__ import annotations

from pathlib import Path

from discord_copilot.config.logging import get_logger
from discord_copilot.llm.gateway import ModelGateway

logger = get_logger(__name__)

DEFAULT_PROMPT_PATH = Path(__file__).parent.parent / "prompts" / "summarizer.txt"


def build_summary_request(existing_summary: str, recent_exchange: str) -> str:
    """User-side prompt combining the existing summary with the recent exchange."""
    if existing_summary.strip():
        return (
            f"Existing summary: {existing_summary}\n\n"
            f"Recent conversation:\n{recent_exchange}\n\n"
            "Create a condensed summary that combines both."
        )
    return f"Recent conversation:\n{recent_exchange}\n\nCreate a concise summary."


class Summarizer:
    """
    Produce rolling conversation summaries.

    Args:
        gateway: Model gateway used for the completion
        system_prompt: Summarization instructions; read from prompts/summarizer.txt
                       when not given
    """

    def __init__(self, gateway: ModelGateway, system_prompt: str | None = None):
        self._gateway = gateway
        self._system_prompt = system_prompt or DEFAULT_PROMPT_PATH.read_text(encoding="utf-8").strip()

    async def summarize(self, existing_summary: str, recent_exchange: str) -> str:
        """
        Return a new summary covering both inputs.

        Raises:
            LLMError: If the model call fails or returns an empty summary
        """
        messages = [
            {"role": "system", "content": self._system_prompt},
            {"role": "user", "content": build_summary_request(existing_summary, recent_exchange)},
        ]
        response = await self._gateway.complete(messages)
        summary = response.text.strip()
        logger.debug(f"Summary generated ({len(summary)} chars)")
        return summary
