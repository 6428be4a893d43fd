"""
LLM layer.

Everything that talks to the hosted language model lives here:

    assemble_context()  →  ordered messages (instructions → summary → message)
                                   ↓
    ResponseGenerator.generate()   (30s timeout)      Summarizer.summarize()
                    ↘                                     ↙
                          ModelGateway.complete()  →  LiteLLM

The gateway is stateless. Conversation memory is a rolling summary kept in
the store and passed in by the caller.
"""

from discord_copilot.llm.context import assemble_context
from discord_copilot.llm.gateway import ModelGateway
from discord_copilot.llm.models import GenerationTimeoutError, LLMError, LLMResponse, TokenUsage
from discord_copilot.llm.responder import ResponseGenerator
from discord_copilot.llm.summarizer import Summarizer

__all__ = [
    "assemble_context",
    "ModelGateway",
    "ResponseGenerator",
    "Summarizer",
    "LLMResponse",
    "LLMError",
    "GenerationTimeoutError",
    "TokenUsage",
]
