"""
Row models for the three tables the bot and dashboard share.

- SystemInstructions: singleton row holding the bot's system prompt
- AllowedChannel: one row per channel on the allow-list
- ConversationState: singleton row holding the rolling summary and reply counter
"""

import re
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

SYSTEM_INSTRUCTIONS_TABLE = "system_instructions"
ALLOWED_CHANNELS_TABLE = "allowed_channels"
CONVERSATION_STATE_TABLE = "conversation_state"

# Singleton rows are addressed by this column rather than by id
SINGLETON_COLUMN = "singleton"

FALLBACK_INSTRUCTIONS = "You are a helpful Discord assistant."
MEMORY_PLACEHOLDER = "No conversation history yet."

CHANNEL_ID_PATTERN = re.compile(r"^\d{18,19}$", re.ASCII)


def is_valid_channel_id(channel_id: str) -> bool:
    """True for an 18-19 digit numeric string (Discord snowflake)."""
    return bool(CHANNEL_ID_PATTERN.fullmatch(channel_id))


class SystemInstructions(BaseModel):
    id: int | str | None = None
    content: str = ""
    updated_at: datetime | None = None
    updated_by: str | None = Field(None, description="Auth user id of the last editor")

    model_config = ConfigDict(extra="ignore")

    @field_validator("content", mode="before")
    @classmethod
    def null_content_is_empty(cls, v):
        return "" if v is None else v


class AllowedChannel(BaseModel):
    id: int | str
    channel_id: str = Field(description="Discord channel snowflake")
    channel_name: str | None = None
    is_enabled: bool = True
    added_at: datetime | None = None
    added_by: str | None = None

    model_config = ConfigDict(extra="ignore")

    @property
    def label(self) -> str:
        return self.channel_name or self.channel_id


class ConversationState(BaseModel):
    id: int | str | None = None
    summary: str = ""
    message_count: int = Field(default=0, ge=0)
    last_updated: datetime | None = None

    model_config = ConfigDict(extra="ignore")

    # NULL summary column reads as no summary
    @field_validator("summary", mode="before")
    @classmethod
    def null_summary_is_empty(cls, v):
        return "" if v is None else v

    @field_validator("message_count", mode="before")
    @classmethod
    def null_count_is_zero(cls, v):
        return 0 if v is None else v

    @property
    def has_history(self) -> bool:
        return bool(self.summary.strip()) and self.summary != MEMORY_PLACEHOLDER
