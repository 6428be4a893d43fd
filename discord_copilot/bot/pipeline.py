"""
Message pipeline — what happens to one incoming chat message.

The handler runs a fixed sequence of named stages. Each stage returns a
StageResult telling the handler to continue, to stop after sending the user a
short apology, or to stop silently:

    admission      bot authors ignored; mention OR allow-listed channel admitted
        ↓
    configuration  instructions + conversation state, fetched concurrently
        ↓
    generation     model reply under a hard timeout
        ↓
    shaping        truncate to the Discord message limit
        ↓
    delivery       send the reply
        ↓
    bookkeeping    increment counter, summarize every N replies (non-fatal)

A stage that aborts never mutates state, and nothing is counted until the
reply has actually been delivered. Bookkeeping runs after delivery; each of
its steps is caught and logged on its own and never reaches the user.

The handler is platform-neutral: it sees a ChatEvent, not a discord.Message.
"""

from __future__ import annotations

import asyncio
import enum
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from discord_copilot.bot.channel_cache import ChannelCache
from discord_copilot.config.logging import ContextAdapter, get_logger
from discord_copilot.store.models import FALLBACK_INSTRUCTIONS, ConversationState

logger = get_logger(__name__)

CONFIG_APOLOGY = "⚠️ I'm having trouble connecting to my configuration. Please try again in a moment."
GENERATION_APOLOGY = "⚠️ I encountered an error while processing your message. Please try again later."
UNEXPECTED_APOLOGY = "⚠️ An unexpected error occurred. Please try again."

ELLIPSIS = "..."


class ConversationStore(Protocol):
    async def get_system_instructions(self) -> str: ...
    async def get_conversation_state(self) -> ConversationState | None: ...
    async def increment_message_count(self) -> int: ...
    async def replace_summary(self, summary: str) -> None: ...


class ReplyGenerator(Protocol):
    async def generate(self, system_instructions: str, prior_summary: str | None, user_message: str) -> str: ...


class ConversationSummarizer(Protocol):
    async def summarize(self, existing_summary: str, recent_exchange: str) -> str: ...


@dataclass
class ChatEvent:
    """A chat message as the pipeline sees it, plus a way to answer it."""

    author_id: str
    author_is_bot: bool
    channel_id: str
    message_id: str
    content: str
    mentions_bot: bool
    reply: Callable[[str], Awaitable[Any]]
    guild_id: str | None = None
    author_tag: str = ""

    def log_context(self) -> dict[str, str]:
        context = {
            "channel_id": self.channel_id,
            "user_id": self.author_id,
            "message_id": self.message_id,
        }
        if self.guild_id:
            context["guild_id"] = self.guild_id
        return context


class StageOutcome(enum.Enum):
    CONTINUE = "continue"
    ABORT_REPLY = "abort_reply"
    ABORT_SILENT = "abort_silent"


@dataclass(frozen=True)
class StageResult:
    outcome: StageOutcome
    user_message: str | None = None

    @classmethod
    def proceed(cls) -> StageResult:
        return cls(StageOutcome.CONTINUE)

    @classmethod
    def apologize(cls, user_message: str) -> StageResult:
        return cls(StageOutcome.ABORT_REPLY, user_message)

    @classmethod
    def silent(cls) -> StageResult:
        return cls(StageOutcome.ABORT_SILENT)


class HandleOutcome(enum.Enum):
    IGNORED = "ignored"  # not admitted
    ABORTED = "aborted"  # admitted, but no reply was delivered
    REPLIED = "replied"  # reply delivered (bookkeeping may still have failed)


@dataclass
class Exchange:
    """Working state carried from stage to stage for one message."""

    event: ChatEvent
    log: ContextAdapter
    instructions: str = ""
    state: ConversationState | None = None
    reply_text: str = ""
    stages_run: list[str] = field(default_factory=list)

    @property
    def prior_summary(self) -> str | None:
        return self.state.summary if self.state and self.state.summary else None


def shape_response(text: str, limit: int = 2000) -> str:
    """Clamp text to the outbound message limit, marking truncation with an ellipsis."""
    if len(text) <= limit:
        return text
    return text[: limit - len(ELLIPSIS)] + ELLIPSIS


def recent_exchange(user_message: str, bot_reply: str) -> str:
    """Transcript of the latest exchange fed to the summarizer."""
    return f"User: {user_message}\nBot: {bot_reply}"


class MessageHandler:
    """
    Runs the message pipeline for chat events.

    Args:
        store: Conversation/config reads and bookkeeping writes (PersistenceAccessor)
        channel_cache: Allow-list cache, refreshed best-effort on each message
        responder: Produces the reply text (raises on failure or timeout)
        summarizer: Produces rolling summaries
        message_limit: Hard outbound length limit (Discord: 2000)
        summary_threshold: Rebuild the summary once the counter reaches this value
    """

    def __init__(
        self,
        store: ConversationStore,
        channel_cache: ChannelCache,
        responder: ReplyGenerator,
        summarizer: ConversationSummarizer,
        message_limit: int = 2000,
        summary_threshold: int = 6,
    ):
        self._store = store
        self._cache = channel_cache
        self._responder = responder
        self._summarizer = summarizer
        self._message_limit = message_limit
        self._summary_threshold = summary_threshold

    async def handle(self, event: ChatEvent) -> HandleOutcome:
        """
        Process one chat event end to end. Never raises.
        """
        exchange = Exchange(event=event, log=ContextAdapter(logger, event.log_context()))
        stages: list[tuple[str, Callable[[Exchange], Awaitable[StageResult]]]] = [
            ("admission", self._admit),
            ("configuration", self._load_configuration),
            ("generation", self._generate),
            ("shaping", self._shape),
            ("delivery", self._deliver),
        ]

        try:
            for name, stage in stages:
                exchange.stages_run.append(name)
                result = await stage(exchange)
                if result.outcome is StageOutcome.CONTINUE:
                    continue
                if result.outcome is StageOutcome.ABORT_REPLY:
                    await self._send_apology(exchange, result.user_message or UNEXPECTED_APOLOGY)
                return HandleOutcome.IGNORED if name == "admission" else HandleOutcome.ABORTED

            exchange.stages_run.append("bookkeeping")
            await self._record_delivery(exchange)
            return HandleOutcome.REPLIED

        except Exception as e:
            exchange.log.exception(f"Unexpected error handling message: {e}")
            await self._send_apology(exchange, UNEXPECTED_APOLOGY)
            return HandleOutcome.ABORTED

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _admit(self, exchange: Exchange) -> StageResult:
        await self._cache.refresh()

        event = exchange.event
        if event.author_is_bot:
            return StageResult.silent()
        if not (event.mentions_bot or self._cache.is_admitted(event.channel_id)):
            return StageResult.silent()

        exchange.log.info(
            "Processing message",
            context={"author": event.author_tag, "content_length": len(event.content)},
        )
        return StageResult.proceed()

    async def _load_configuration(self, exchange: Exchange) -> StageResult:
        try:
            instructions, state = await asyncio.gather(
                self._store.get_system_instructions(),
                self._store.get_conversation_state(),
            )
        except Exception as e:
            exchange.log.error(f"Failed to fetch configuration: {e}")
            return StageResult.apologize(CONFIG_APOLOGY)

        if not instructions or not instructions.strip():
            exchange.log.warning("System instructions are empty, using fallback")
            instructions = FALLBACK_INSTRUCTIONS

        exchange.instructions = instructions
        exchange.state = state
        exchange.log.info(
            "Configuration loaded",
            context={
                "instructions_length": len(instructions),
                "has_summary": exchange.prior_summary is not None,
                "message_count": state.message_count if state else 0,
            },
        )
        return StageResult.proceed()

    async def _generate(self, exchange: Exchange) -> StageResult:
        exchange.log.info("Generating AI response")
        try:
            text = await self._responder.generate(
                exchange.instructions,
                exchange.prior_summary,
                exchange.event.content,
            )
        except Exception as e:
            exchange.log.error(f"AI generation failed: {e}")
            return StageResult.apologize(GENERATION_APOLOGY)

        exchange.reply_text = text
        exchange.log.info("AI response generated", context={"response_length": len(text)})
        return StageResult.proceed()

    async def _shape(self, exchange: Exchange) -> StageResult:
        shaped = shape_response(exchange.reply_text, self._message_limit)
        if shaped != exchange.reply_text:
            exchange.log.warning(
                "Response exceeds Discord limit, truncating",
                context={"original_length": len(exchange.reply_text), "limit": self._message_limit},
            )
        exchange.reply_text = shaped
        return StageResult.proceed()

    async def _deliver(self, exchange: Exchange) -> StageResult:
        try:
            await exchange.event.reply(exchange.reply_text)
        except Exception as e:
            # Nothing is counted for a reply the user never received
            exchange.log.error(f"Failed to send Discord message: {e}")
            return StageResult.silent()
        exchange.log.info("Response sent successfully")
        return StageResult.proceed()

    # ------------------------------------------------------------------
    # Post-delivery bookkeeping (non-fatal)
    # ------------------------------------------------------------------

    async def _record_delivery(self, exchange: Exchange) -> None:
        log = exchange.log

        try:
            await self._store.increment_message_count()
        except Exception as e:
            log.error(f"Failed to increment message count (non-fatal): {e}")
            return

        try:
            state = await self._store.get_conversation_state()
        except Exception as e:
            log.error(f"Failed to re-read conversation state (non-fatal): {e}")
            return

        message_count = state.message_count if state else 0
        if message_count < self._summary_threshold:
            return

        log.info("Triggering summarization", context={"message_count": message_count})
        try:
            summary = await self._summarizer.summarize(
                state.summary if state else "",
                recent_exchange(exchange.event.content, exchange.reply_text),
            )
        except Exception as e:
            log.error(f"Summarization failed (non-fatal): {e}")
            return
        log.info("Summary generated", context={"summary_length": len(summary)})

        try:
            await self._store.replace_summary(summary)
        except Exception as e:
            log.error(f"Failed to store new summary (non-fatal): {e}")
            return
        log.info("Summarization complete")

    async def _send_apology(self, exchange: Exchange, text: str) -> None:
        try:
            await exchange.event.reply(text)
        except Exception as e:
            exchange.log.error(f"Failed to send error message to user: {e}")
