"""
Data structures and errors shared by the LLM layer.
"""

from pydantic import BaseModel, Field


class LLMError(Exception):
    """
    Raised when the model gateway cannot produce a usable completion.

    Covers transport/API failures as well as empty completions, which are
    never treated as a valid answer.
    """

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class GenerationTimeoutError(LLMError):
    """Raised when a chat reply is not produced within the configured timeout."""


class TokenUsage(BaseModel):
    """Token accounting reported by the provider for one completion."""

    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class LLMResponse(BaseModel):
    """A single non-empty completion returned by the model gateway."""

    text: str = Field(min_length=1, description="Completion text, stripped of surrounding whitespace")
    model: str = Field(default="", description="Model name reported by the provider")
    usage: TokenUsage = Field(default_factory=TokenUsage)
