"""
Persistence accessor over the Supabase (PostgREST) store.

The bot and the dashboard share three tables:

    system_instructions   singleton   bot prompt, edited from the dashboard
    allowed_channels      list        channel allow-list
    conversation_state    singleton   rolling summary + reply counter

Failure policy differs by caller:
- Bot-side reads degrade independently: missing instructions fall back to a
  fixed sentence, a missing allow-list becomes an empty set, and a missing
  conversation state is returned as None so callers can tell "no state" from
  "empty state".
- A row that comes back but does not fit its model is a StoreError like any
  other read failure, so it takes the same fallback path.
- Writes raise StoreError. The bot only writes from its non-fatal bookkeeping
  zone, which logs and swallows at a higher level with the specific error
  still attached.
- Admin operations raise, and ValidationError messages are shown to the admin
  verbatim.

The reply counter is incremented client-side (read, then write count + 1).
Two handlers racing can lose an increment; the store offers no atomic
increment through this interface.
"""

from __future__ import annotations

from typing import Any, TypeVar

from postgrest.exceptions import APIError
from pydantic import BaseModel
from pydantic import ValidationError as RowValidationError
from supabase import AsyncClient, acreate_client
from supabase.lib.client_options import AsyncClientOptions

from discord_copilot.config.logging import get_logger
from discord_copilot.config.settings import StoreSettings
from discord_copilot.store.exceptions import (
    DuplicateChannelError,
    InvalidChannelIdError,
    RecordNotFoundError,
    StoreError,
    ValidationError,
)
from discord_copilot.store.models import (
    ALLOWED_CHANNELS_TABLE,
    CONVERSATION_STATE_TABLE,
    FALLBACK_INSTRUCTIONS,
    MEMORY_PLACEHOLDER,
    SINGLETON_COLUMN,
    SYSTEM_INSTRUCTIONS_TABLE,
    AllowedChannel,
    ConversationState,
    SystemInstructions,
    is_valid_channel_id,
)

logger = get_logger(__name__)

# PostgreSQL unique_violation
UNIQUE_VIOLATION = "23505"

RowT = TypeVar("RowT", bound=BaseModel)


async def create_store_client(settings: StoreSettings) -> AsyncClient:
    """Create an async Supabase client authenticated with the service role key."""
    return await acreate_client(
        settings.url,
        settings.service_role_key,
        options=AsyncClientOptions(auto_refresh_token=False, persist_session=False),
    )


def parse_row(model: type[RowT], row: Any, what: str) -> RowT:
    """
    Validate one raw row into its model.

    Raises:
        StoreError: If the row does not fit the model (wrong types, negative counter)
    """
    try:
        return model.model_validate(row)
    except RowValidationError as e:
        raise StoreError(f"Malformed {what} row: {e}", cause=e) from e


class PersistenceAccessor:
    """
    Reads and writes the bot's configuration and conversation state.

    Args:
        client: Supabase async client (or any object with the same
                table(...).select(...).execute() query-builder surface)
    """

    def __init__(self, client: AsyncClient):
        self._client = client

    # ------------------------------------------------------------------
    # Bot-side reads (with fallbacks)
    # ------------------------------------------------------------------

    async def get_system_instructions(self) -> str:
        """Return the system instructions, or the fallback sentence on error/blank."""
        try:
            response = await (
                self._client.table(SYSTEM_INSTRUCTIONS_TABLE).select("content").single().execute()
            )
        except Exception as e:
            logger.warning(f"Failed to fetch system instructions, using fallback: {e}")
            return FALLBACK_INSTRUCTIONS

        content = (response.data or {}).get("content") or ""
        if not content.strip():
            logger.warning("System instructions are empty, using fallback")
            return FALLBACK_INSTRUCTIONS
        return content

    async def fetch_enabled_channel_ids(self) -> frozenset[str]:
        """
        Return ids of all enabled channels.

        Raises:
            StoreError: If the query fails
        """
        try:
            response = await (
                self._client.table(ALLOWED_CHANNELS_TABLE)
                .select("channel_id")
                .eq("is_enabled", True)
                .execute()
            )
        except Exception as e:
            raise StoreError(f"Failed to fetch allowed channels: {e}", cause=e) from e

        rows = response.data or []
        if not rows:
            logger.info("No allowed channels configured")
        return frozenset(str(row["channel_id"]) for row in rows)

    async def get_enabled_channel_ids(self) -> frozenset[str]:
        """Return ids of all enabled channels, or an empty set on error."""
        try:
            return await self.fetch_enabled_channel_ids()
        except StoreError as e:
            logger.warning(str(e))
            return frozenset()

    async def get_conversation_state(self) -> ConversationState | None:
        """Return the conversation state row, or None when it cannot be read."""
        try:
            return await self._read_conversation_state()
        except StoreError as e:
            logger.warning(str(e))
            return None

    async def _read_conversation_state(self) -> ConversationState:
        try:
            response = await (
                self._client.table(CONVERSATION_STATE_TABLE).select("*").single().execute()
            )
        except Exception as e:
            raise StoreError(f"Failed to fetch conversation state: {e}", cause=e) from e
        if not response.data:
            raise RecordNotFoundError("Conversation state not found")
        return parse_row(ConversationState, response.data, CONVERSATION_STATE_TABLE)

    # ------------------------------------------------------------------
    # Bot-side writes (raise on failure)
    # ------------------------------------------------------------------

    async def increment_message_count(self) -> int:
        """
        Add one to the reply counter and return the new value.

        Raises:
            RecordNotFoundError: If the conversation state row is missing
            StoreError: If the read or the update fails
        """
        current = await self._read_conversation_state()
        new_count = current.message_count + 1
        await self._update_conversation({"message_count": new_count})
        logger.info(f"Message count incremented to {new_count}")
        return new_count

    async def replace_summary(self, summary: str) -> None:
        """
        Store a new rolling summary and reset the reply counter to 0.

        Raises:
            ValidationError: If the summary is empty
            StoreError: If the update fails
        """
        if not summary or not summary.strip():
            raise ValidationError("Summary cannot be empty")
        await self._update_conversation({"summary": summary, "message_count": 0})
        logger.info(f"Conversation summary updated and message count reset ({len(summary)} chars)")

    async def _update_conversation(self, values: dict[str, Any]) -> list[dict[str, Any]]:
        return await self._update_singleton(CONVERSATION_STATE_TABLE, values)

    async def _update_singleton(self, table: str, values: dict[str, Any]) -> list[dict[str, Any]]:
        try:
            response = await (
                self._client.table(table).update(values).eq(SINGLETON_COLUMN, True).execute()
            )
        except Exception as e:
            raise StoreError(f"Failed to update {table}: {e}", cause=e) from e
        if not response.data:
            raise RecordNotFoundError(f"No {table} row to update")
        return response.data

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    async def get_instructions_record(self) -> SystemInstructions:
        try:
            response = await (
                self._client.table(SYSTEM_INSTRUCTIONS_TABLE).select("*").single().execute()
            )
        except Exception as e:
            raise StoreError(f"Failed to fetch system instructions: {e}", cause=e) from e
        if not response.data:
            raise RecordNotFoundError("System instructions not found")
        return parse_row(SystemInstructions, response.data, SYSTEM_INSTRUCTIONS_TABLE)

    async def update_system_instructions(
        self, content: str, updated_by: str | None = None
    ) -> SystemInstructions:
        if not content.strip():
            raise ValidationError("System instructions cannot be empty.")
        rows = await self._update_singleton(
            SYSTEM_INSTRUCTIONS_TABLE, {"content": content, "updated_by": updated_by}
        )
        logger.info(f"System instructions updated by {updated_by or 'unknown'} ({len(content)} chars)")
        return parse_row(SystemInstructions, rows[0], SYSTEM_INSTRUCTIONS_TABLE)

    async def list_channels(self) -> list[AllowedChannel]:
        """All allow-list rows, newest first."""
        try:
            response = await (
                self._client.table(ALLOWED_CHANNELS_TABLE)
                .select("*")
                .order("added_at", desc=True)
                .execute()
            )
        except Exception as e:
            raise StoreError(f"Failed to list channels: {e}", cause=e) from e
        return [parse_row(AllowedChannel, row, ALLOWED_CHANNELS_TABLE) for row in response.data or []]

    async def add_channel(
        self,
        channel_id: str,
        channel_name: str | None = None,
        added_by: str | None = None,
    ) -> AllowedChannel:
        """
        Add an enabled channel to the allow-list.

        Raises:
            InvalidChannelIdError: If channel_id is not an 18-19 digit snowflake
            DuplicateChannelError: If the channel is already on the list
            StoreError: If the insert fails for any other reason
        """
        channel_id = channel_id.strip()
        if not is_valid_channel_id(channel_id):
            raise InvalidChannelIdError(channel_id)

        row = {
            "channel_id": channel_id,
            "channel_name": (channel_name or "").strip() or None,
            "is_enabled": True,
            "added_by": added_by,
        }
        try:
            response = await self._client.table(ALLOWED_CHANNELS_TABLE).insert(row).execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise DuplicateChannelError(channel_id, cause=e) from e
            raise StoreError(f"Failed to add channel {channel_id}: {e.message}", cause=e) from e
        except Exception as e:
            raise StoreError(f"Failed to add channel {channel_id}: {e}", cause=e) from e

        if not response.data:
            raise StoreError(f"Insert of channel {channel_id} returned no row")
        logger.info(f"Channel {channel_id} added to allow-list")
        return parse_row(AllowedChannel, response.data[0], ALLOWED_CHANNELS_TABLE)

    async def set_channel_enabled(self, row_id: int | str, enabled: bool) -> None:
        try:
            response = await (
                self._client.table(ALLOWED_CHANNELS_TABLE)
                .update({"is_enabled": enabled})
                .eq("id", row_id)
                .execute()
            )
        except Exception as e:
            raise StoreError(f"Failed to update channel {row_id}: {e}", cause=e) from e
        if not response.data:
            raise RecordNotFoundError(f"Channel {row_id} not found")
        logger.info(f"Channel {row_id} {'enabled' if enabled else 'disabled'}")

    async def delete_channel(self, row_id: int | str) -> None:
        try:
            await self._client.table(ALLOWED_CHANNELS_TABLE).delete().eq("id", row_id).execute()
        except Exception as e:
            raise StoreError(f"Failed to remove channel {row_id}: {e}", cause=e) from e
        logger.info(f"Channel {row_id} removed from allow-list")

    async def get_conversation_record(self) -> ConversationState:
        """Conversation state for display; raises instead of returning None."""
        return await self._read_conversation_state()

    async def reset_conversation(self) -> None:
        """Replace the summary with the placeholder and zero the counter."""
        await self._update_conversation({"summary": MEMORY_PLACEHOLDER, "message_count": 0})
        logger.info("Conversation memory reset")
