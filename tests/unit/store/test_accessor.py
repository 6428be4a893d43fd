"""
Unit tests for PersistenceAccessor.

Most tests run against _FakeSupabase, an in-memory stand-in for the
table(...).select(...).eq(...).execute() query builder, so a sequence of
reads and writes can be checked end to end. Failure paths use a MagicMock
client whose execute() raises.
"""

import copy
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from postgrest.exceptions import APIError
from pydantic import ValidationError as PydanticValidationError

from discord_copilot.store import (
    FALLBACK_INSTRUCTIONS,
    MEMORY_PLACEHOLDER,
    DuplicateChannelError,
    InvalidChannelIdError,
    PersistenceAccessor,
    RecordNotFoundError,
    StoreError,
    ValidationError,
)


# ---------------------------------------------------------------------------
# In-memory query builder
# ---------------------------------------------------------------------------

class _FakeQuery:
    def __init__(self, db: "_FakeSupabase", table: str):
        self._db = db
        self._table = table
        self._op = "select"
        self._values = None
        self._filters: list[tuple[str, object]] = []
        self._single = False
        self._order: tuple[str, bool] | None = None

    def select(self, *columns):
        self._op = "select"
        return self

    def insert(self, row):
        self._op = "insert"
        self._values = row
        return self

    def update(self, values):
        self._op = "update"
        self._values = values
        return self

    def delete(self):
        self._op = "delete"
        return self

    def eq(self, column, value):
        self._filters.append((column, value))
        return self

    def single(self):
        self._single = True
        return self

    def order(self, column, desc=False):
        self._order = (column, desc)
        return self

    def _matches(self, row) -> bool:
        return all(row.get(column) == value for column, value in self._filters)

    async def execute(self):
        self._db.calls.append((self._table, self._op, self._values))
        rows = self._db.tables[self._table]

        if self._op == "insert":
            if any(r["channel_id"] == self._values["channel_id"] for r in rows):
                raise APIError({"code": "23505", "message": "duplicate key value violates unique constraint"})
            row = {**self._values, "id": len(rows) + 1, "added_at": datetime.now(timezone.utc).isoformat()}
            rows.append(row)
            return SimpleNamespace(data=[copy.deepcopy(row)])

        matched = [r for r in rows if self._matches(r)]
        if self._op == "update":
            for row in matched:
                row.update(self._values)
            return SimpleNamespace(data=copy.deepcopy(matched))
        if self._op == "delete":
            self._db.tables[self._table] = [r for r in rows if not self._matches(r)]
            return SimpleNamespace(data=copy.deepcopy(matched))

        if self._order:
            column, desc = self._order
            matched = sorted(matched, key=lambda r: r.get(column) or "", reverse=desc)
        if self._single:
            if len(matched) != 1:
                raise APIError({"code": "PGRST116", "message": "JSON object requested, multiple (or no) rows returned"})
            return SimpleNamespace(data=copy.deepcopy(matched[0]))
        return SimpleNamespace(data=copy.deepcopy(matched))


class _FakeSupabase:
    def __init__(self):
        self.calls: list[tuple[str, str, object]] = []
        self.tables: dict[str, list[dict]] = {
            "system_instructions": [
                {"id": 1, "singleton": True, "content": "You are a pirate.", "updated_at": None, "updated_by": None}
            ],
            "allowed_channels": [],
            "conversation_state": [
                {"id": 1, "singleton": True, "summary": MEMORY_PLACEHOLDER, "message_count": 0, "last_updated": None}
            ],
        }

    def table(self, name: str) -> _FakeQuery:
        return _FakeQuery(self, name)

    def writes(self, table: str) -> list:
        return [values for t, op, values in self.calls if t == table and op in ("update", "insert")]


def _make_failing_client(error: Exception = ConnectionError("connection refused")) -> MagicMock:
    """Client whose every query fails at execute()."""
    query = MagicMock()
    for method in ("select", "insert", "update", "delete", "eq", "single", "order"):
        getattr(query, method).return_value = query
    query.execute = AsyncMock(side_effect=error)
    client = MagicMock()
    client.table.return_value = query
    return client


@pytest.fixture
def db():
    return _FakeSupabase()


@pytest.fixture
def store(db):
    return PersistenceAccessor(db)


@pytest.fixture
def failing_store():
    return PersistenceAccessor(_make_failing_client())


# ---------------------------------------------------------------------------
# Bot-side reads
# ---------------------------------------------------------------------------

class TestSystemInstructionsRead:
    @pytest.mark.asyncio
    async def test_returns_stored_content(self, store):
        """The stored prompt is returned unchanged."""
        assert await store.get_system_instructions() == "You are a pirate."

    @pytest.mark.asyncio
    async def test_blank_content_falls_back(self, db, store):
        """Whitespace-only instructions read as the fallback sentence."""
        db.tables["system_instructions"][0]["content"] = "   "
        assert await store.get_system_instructions() == FALLBACK_INSTRUCTIONS

    @pytest.mark.asyncio
    async def test_read_failure_falls_back(self, failing_store):
        """A failed query reads as the fallback sentence instead of raising."""
        assert await failing_store.get_system_instructions() == FALLBACK_INSTRUCTIONS


class TestEnabledChannelsRead:
    @pytest.mark.asyncio
    async def test_only_enabled_channels_returned(self, db, store):
        """Disabled rows are filtered out by the query."""
        db.tables["allowed_channels"] = [
            {"id": 1, "channel_id": "111111111111111111", "is_enabled": True},
            {"id": 2, "channel_id": "222222222222222222", "is_enabled": False},
        ]
        assert await store.fetch_enabled_channel_ids() == frozenset({"111111111111111111"})

    @pytest.mark.asyncio
    async def test_fetch_raises_on_failure(self, failing_store):
        """The cache-facing read raises so the cache can keep its stale set."""
        with pytest.raises(StoreError):
            await failing_store.fetch_enabled_channel_ids()

    @pytest.mark.asyncio
    async def test_get_returns_empty_set_on_failure(self, failing_store):
        """The forgiving read turns a failure into an empty set."""
        assert await failing_store.get_enabled_channel_ids() == frozenset()


class TestConversationStateRead:
    @pytest.mark.asyncio
    async def test_returns_state(self, store):
        """The placeholder row reads as a state without history."""
        state = await store.get_conversation_state()
        assert state.summary == MEMORY_PLACEHOLDER
        assert state.message_count == 0
        assert state.has_history is False

    @pytest.mark.asyncio
    async def test_failure_returns_none(self, failing_store):
        """A failed query reads as None, not an empty state."""
        assert await failing_store.get_conversation_state() is None

    @pytest.mark.asyncio
    async def test_missing_row_returns_none(self, db, store):
        """No row at all also reads as None."""
        db.tables["conversation_state"] = []
        assert await store.get_conversation_state() is None

    @pytest.mark.asyncio
    async def test_null_summary_reads_as_empty(self, db, store):
        """A NULL summary column is a state with no summary, not a read failure."""
        db.tables["conversation_state"][0].update(summary=None, message_count=2)

        state = await store.get_conversation_state()

        assert state is not None
        assert state.summary == ""
        assert state.message_count == 2
        assert state.has_history is False

    @pytest.mark.asyncio
    async def test_null_counter_reads_as_zero(self, db, store):
        """A NULL counter reads as 0."""
        db.tables["conversation_state"][0]["message_count"] = None
        assert (await store.get_conversation_state()).message_count == 0

    @pytest.mark.asyncio
    async def test_malformed_row_returns_none(self, db, store):
        """A row that does not fit the model degrades like any other read failure."""
        db.tables["conversation_state"][0]["message_count"] = -1
        assert await store.get_conversation_state() is None

    @pytest.mark.asyncio
    async def test_malformed_row_is_store_error_for_admin_read(self, db, store):
        """The admin read raises StoreError with the pydantic error attached."""
        db.tables["conversation_state"][0]["message_count"] = "many"
        with pytest.raises(StoreError, match="Malformed conversation_state row") as exc_info:
            await store.get_conversation_record()
        assert isinstance(exc_info.value.cause, PydanticValidationError)


# ---------------------------------------------------------------------------
# Bot-side writes
# ---------------------------------------------------------------------------

class TestMessageCounter:
    @pytest.mark.asyncio
    async def test_increment_returns_new_value(self, store):
        """Each increment is read back by the next one."""
        assert await store.increment_message_count() == 1
        assert await store.increment_message_count() == 2
        assert (await store.get_conversation_state()).message_count == 2

    @pytest.mark.asyncio
    async def test_increment_writes_only_the_counter(self, db, store):
        """An increment never rewrites the summary."""
        await store.increment_message_count()
        assert db.writes("conversation_state") == [{"message_count": 1}]

    @pytest.mark.asyncio
    async def test_increment_without_state_row_raises(self, db, store):
        """There is nothing to increment without the row."""
        db.tables["conversation_state"] = []
        with pytest.raises(StoreError):
            await store.increment_message_count()

    @pytest.mark.asyncio
    async def test_increment_failure_raises(self, failing_store):
        """Write-side failures raise for the caller to log."""
        with pytest.raises(StoreError):
            await failing_store.increment_message_count()


class TestReplaceSummary:
    @pytest.mark.asyncio
    async def test_writes_summary_and_resets_counter(self, db, store):
        """A new summary and a zeroed counter are written together."""
        db.tables["conversation_state"][0]["message_count"] = 6
        await store.replace_summary("They discussed the weather.")

        state = await store.get_conversation_state()
        assert state.summary == "They discussed the weather."
        assert state.message_count == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("summary", ["", "   "])
    async def test_empty_summary_rejected_without_write(self, db, store, summary):
        """An empty summary never overwrites the stored one."""
        with pytest.raises(ValidationError):
            await store.replace_summary(summary)
        assert db.writes("conversation_state") == []

    @pytest.mark.asyncio
    async def test_missing_row_raises_not_found(self, db, store):
        """An update that matches no row is reported as not found."""
        db.tables["conversation_state"] = []
        with pytest.raises(RecordNotFoundError):
            await store.replace_summary("anything")


# ---------------------------------------------------------------------------
# Admin operations
# ---------------------------------------------------------------------------

class TestSystemInstructionsAdmin:
    @pytest.mark.asyncio
    async def test_update_records_editor(self, db, store):
        """The editor's id is stored with the new instructions."""
        record = await store.update_system_instructions("Be concise.", updated_by="admin-1")
        assert record.content == "Be concise."
        assert record.updated_by == "admin-1"
        assert (await store.get_instructions_record()).content == "Be concise."

    @pytest.mark.asyncio
    async def test_blank_update_rejected(self, store):
        """Blank instructions are refused before any write."""
        with pytest.raises(ValidationError, match="cannot be empty"):
            await store.update_system_instructions("  \n")

    @pytest.mark.asyncio
    async def test_null_content_record_reads_as_empty(self, db, store):
        """NULL content reads as an empty record and as the fallback for the bot."""
        db.tables["system_instructions"][0]["content"] = None
        assert (await store.get_instructions_record()).content == ""
        assert await store.get_system_instructions() == FALLBACK_INSTRUCTIONS

    @pytest.mark.asyncio
    async def test_malformed_record_is_store_error(self, db, store):
        """A row with an unparseable timestamp is a StoreError."""
        db.tables["system_instructions"][0]["updated_at"] = "not a timestamp"
        with pytest.raises(StoreError, match="Malformed system_instructions row"):
            await store.get_instructions_record()


class TestChannelAdmin:
    @pytest.mark.asyncio
    async def test_add_channel(self, store):
        """The id is trimmed and the new row is enabled."""
        channel = await store.add_channel(" 123456789012345678 ", "general", added_by="admin-1")
        assert channel.channel_id == "123456789012345678"
        assert channel.channel_name == "general"
        assert channel.is_enabled is True
        assert await store.fetch_enabled_channel_ids() == frozenset({"123456789012345678"})

    @pytest.mark.asyncio
    async def test_blank_name_stored_as_none(self, store):
        """A blank name is stored as NULL and the label falls back to the id."""
        channel = await store.add_channel("123456789012345678", "  ")
        assert channel.channel_name is None
        assert channel.label == "123456789012345678"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("channel_id", ["12345", "abcdefghijklmnopqr", "12345678901234567890", ""])
    async def test_invalid_id_rejected_without_insert(self, db, store, channel_id):
        """Invalid snowflakes never reach the store."""
        with pytest.raises(InvalidChannelIdError, match="18-19 digits"):
            await store.add_channel(channel_id)
        assert db.writes("allowed_channels") == []

    @pytest.mark.asyncio
    async def test_duplicate_is_distinguishable_and_list_unchanged(self, store):
        """A unique violation raises DuplicateChannelError and adds no row."""
        await store.add_channel("123456789012345678", "general")
        before = await store.list_channels()

        with pytest.raises(DuplicateChannelError, match="already exists") as exc_info:
            await store.add_channel("123456789012345678", "general-again")

        assert isinstance(exc_info.value.cause, APIError)
        assert len(await store.list_channels()) == len(before) == 1

    @pytest.mark.asyncio
    async def test_other_insert_errors_are_store_errors(self):
        """Other PostgREST errors are plain StoreErrors."""
        client = _make_failing_client(APIError({"code": "42501", "message": "permission denied"}))
        with pytest.raises(StoreError) as exc_info:
            await PersistenceAccessor(client).add_channel("123456789012345678")
        assert not isinstance(exc_info.value, DuplicateChannelError)

    @pytest.mark.asyncio
    async def test_toggle_and_delete(self, store):
        """Disabling hides a channel from the bot; deleting removes the row."""
        channel = await store.add_channel("123456789012345678")

        await store.set_channel_enabled(channel.id, False)
        assert await store.fetch_enabled_channel_ids() == frozenset()
        assert (await store.list_channels())[0].is_enabled is False

        await store.delete_channel(channel.id)
        assert await store.list_channels() == []

    @pytest.mark.asyncio
    async def test_toggle_unknown_channel_raises(self, store):
        """Toggling a missing row is reported as not found."""
        with pytest.raises(RecordNotFoundError):
            await store.set_channel_enabled(999, True)

    @pytest.mark.asyncio
    async def test_list_failure_raises(self, failing_store):
        """Admin reads raise instead of falling back."""
        with pytest.raises(StoreError):
            await failing_store.list_channels()

    @pytest.mark.asyncio
    async def test_malformed_channel_row_is_store_error(self, db, store):
        """A row missing its channel_id fails the whole listing as a StoreError."""
        db.tables["allowed_channels"] = [{"id": 1, "channel_id": None, "is_enabled": True}]
        with pytest.raises(StoreError, match="Malformed allowed_channels row"):
            await store.list_channels()


class TestConversationReset:
    @pytest.mark.asyncio
    async def test_reset_twice_is_idempotent(self, db, store):
        """Resetting writes the placeholder and zero every time."""
        db.tables["conversation_state"][0].update(summary="They talked about cats.", message_count=4)

        for _ in range(2):
            await store.reset_conversation()
            state = await store.get_conversation_record()
            assert state.message_count == 0
            assert state.summary == MEMORY_PLACEHOLDER

    @pytest.mark.asyncio
    async def test_conversation_record_raises_instead_of_none(self, failing_store):
        """The admin read of the state raises where the bot read returns None."""
        with pytest.raises(StoreError):
            await failing_store.get_conversation_record()
