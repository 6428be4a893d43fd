"""
CopilotBot — discord.py bot client.

Manages the full bot lifecycle:
- Connects to the store and builds the message pipeline once at startup
- Loads the ChatCog that feeds messages into the pipeline
- Starts the health endpoint for the hosting platform
- Warms the channel allow-list cache once the gateway is ready
- Cleans up all resources on shutdown via AsyncExitStack
"""

from __future__ import annotations

import discord
from contextlib import AsyncExitStack

from discord.ext import commands

from discord_copilot.bot.channel_cache import ChannelCache
from discord_copilot.bot.health import HealthServer
from discord_copilot.bot.pipeline import MessageHandler
from discord_copilot.config.logging import get_logger
from discord_copilot.config.settings import Settings
from discord_copilot.llm import ModelGateway, ResponseGenerator, Summarizer
from discord_copilot.store import PersistenceAccessor, create_store_client

logger = get_logger(__name__)


def build_message_handler(
    settings: Settings,
    store: PersistenceAccessor,
    channel_cache: ChannelCache,
) -> MessageHandler:
    """Wire the LLM layer and the store into a MessageHandler."""
    gateway = ModelGateway(settings.llm)
    return MessageHandler(
        store=store,
        channel_cache=channel_cache,
        responder=ResponseGenerator(gateway, timeout=settings.llm.timeout),
        summarizer=Summarizer(gateway),
        message_limit=settings.bot.message_limit,
        summary_threshold=settings.bot.summary_threshold,
    )


class CopilotBot(commands.Bot):
    """
    Discord chatbot backed by a hosted LLM.

    Holds shared application state (store accessor, channel cache, message
    handler) and exposes it to the ChatCog. All async resources are managed
    via AsyncExitStack so they're properly cleaned up when the bot shuts down.

    Args:
        settings: Full application settings (bot token, LLM config, store config, etc.)
    """

    def __init__(self, settings: Settings) -> None:
        intents = discord.Intents.none()
        intents.guilds = True
        intents.guild_messages = True
        intents.message_content = True  # Required to read message text
        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
        )
        self.settings = settings
        self.store: PersistenceAccessor | None = None
        self.channel_cache: ChannelCache | None = None
        self.handler: MessageHandler | None = None
        self._exit_stack = AsyncExitStack()

    async def setup_hook(self) -> None:
        """
        Called after login, before connecting to the Gateway.

        Initializes all services, loads the chat cog and starts the health server.
        """
        # --- 1. Store ---
        logger.info("Connecting to store...")
        client = await create_store_client(self.settings.store)
        self._exit_stack.push_async_callback(client.postgrest.aclose)
        self.store = PersistenceAccessor(client)
        logger.info("Store ready")

        # --- 2. Message pipeline ---
        self.channel_cache = ChannelCache(self.store, ttl=self.settings.bot.channel_cache_ttl)
        self.handler = build_message_handler(self.settings, self.store, self.channel_cache)
        logger.info(f"Message pipeline ready (model: {self.settings.llm.model})")

        # --- 3. Load cogs ---
        from discord_copilot.bot.cogs.chat import ChatCog
        await self.add_cog(ChatCog(self, self.handler))
        logger.info("Cogs loaded")

        # --- 4. Health endpoint ---
        if self.settings.health.enabled:
            await self._exit_stack.enter_async_context(
                HealthServer(self.settings.health.host, self.settings.health.port)
            )
        else:
            logger.info("Health server disabled (HEALTH__ENABLED=false)")

    async def on_ready(self) -> None:
        """Called when the bot successfully connects to Discord."""
        logger.info(f"Logged in as {self.user} (id: {self.user.id})")
        logger.info(f"Connected to {len(self.guilds)} guild(s)")
        logger.info(f"AI timeout: {self.settings.llm.timeout:g}s")
        logger.info(f"Discord message limit: {self.settings.bot.message_limit} chars")

        # Initial allow-list load; until it succeeds only mentions are answered
        if self.channel_cache is not None:
            await self.channel_cache.refresh(force=True)

    async def on_message(self, message: discord.Message) -> None:
        """No prefix commands; messages are handled by ChatCog's listener."""
        return

    async def close(self) -> None:
        """Graceful shutdown — clean up all async resources before disconnecting."""
        logger.info(f"Shutting down {self.settings.bot.name}...")
        await self._exit_stack.aclose()
        await super().close()
