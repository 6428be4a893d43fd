"""Web dashboard for administrators: instructions, channel allow-list, memory."""

from discord_copilot.dashboard.app import create_app

__all__ = ["create_app"]
