"""
Discord Copilot - LLM-powered Discord chatbot with an admin dashboard.

This package provides the bot's message pipeline (channel admission, context
assembly, timeout-guarded generation, rolling conversation summaries) and the
web dashboard administrators use to edit its instructions, channel allow-list
and memory.
"""

__version__ = "0.1.0"
