"""
Persistence layer.

All state lives in Supabase; this package only holds row models, errors and
the accessor that reads and writes them.
"""

from discord_copilot.store.accessor import PersistenceAccessor, create_store_client
from discord_copilot.store.exceptions import (
    DuplicateChannelError,
    InvalidChannelIdError,
    RecordNotFoundError,
    StoreError,
    ValidationError,
)
from discord_copilot.store.models import (
    FALLBACK_INSTRUCTIONS,
    MEMORY_PLACEHOLDER,
    AllowedChannel,
    ConversationState,
    SystemInstructions,
    is_valid_channel_id,
)

__all__ = [
    "PersistenceAccessor",
    "create_store_client",
    "StoreError",
    "RecordNotFoundError",
    "ValidationError",
    "InvalidChannelIdError",
    "DuplicateChannelError",
    "AllowedChannel",
    "ConversationState",
    "SystemInstructions",
    "FALLBACK_INSTRUCTIONS",
    "MEMORY_PLACEHOLDER",
    "is_valid_channel_id",
]
