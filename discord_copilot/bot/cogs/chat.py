"""
ChatCog — answers chat messages in allow-listed channels and on @mention.

The cog only translates discord.py objects into a ChatEvent; admission,
generation and bookkeeping all happen in the MessageHandler.
"""

from __future__ import annotations

import discord
from discord.ext import commands

from discord_copilot.bot.pipeline import ChatEvent, MessageHandler
from discord_copilot.config.logging import get_logger

logger = get_logger(__name__)


def to_chat_event(message: discord.Message, bot_user: discord.ClientUser) -> ChatEvent:
    """Build a platform-neutral ChatEvent from a Discord message."""
    return ChatEvent(
        author_id=str(message.author.id),
        author_is_bot=bool(message.author.bot) or message.author.id == bot_user.id,
        channel_id=str(message.channel.id),
        guild_id=str(message.guild.id) if message.guild else None,
        message_id=str(message.id),
        content=message.content,
        mentions_bot=bot_user.mentioned_in(message),
        author_tag=str(message.author),
        reply=message.reply,
    )


class ChatCog(commands.Cog):
    """Routes every incoming message through the message pipeline."""

    def __init__(self, bot, handler: MessageHandler) -> None:
        self.bot = bot
        self.handler = handler

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        # Cheap pre-filter; the pipeline re-checks this
        if message.author.bot:
            return

        event = to_chat_event(message, self.bot.user)
        outcome = await self.handler.handle(event)
        logger.debug(f"Message {event.message_id} handled: {outcome.value}")
