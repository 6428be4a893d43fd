"""
Discord Bot Layer.

Turns Discord messages into chat events and runs them through the message
pipeline (admission, generation, delivery, bookkeeping).
"""

from discord_copilot.bot.client import CopilotBot

__all__ = ["CopilotBot"]
