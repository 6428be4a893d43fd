"""
Discord Copilot CLI entry point.

Provides command-line interface for running the bot, the admin dashboard and
store maintenance commands.
"""

import argparse
import asyncio
import sys
from contextlib import AsyncExitStack
from pathlib import Path

from discord_copilot import __version__
from discord_copilot.config.logging import get_logger, setup_logging
from discord_copilot.config.settings import Settings, load_settings

WRITE_TEST_SUMMARY = "Database connection test successful!"


def create_parser() -> argparse.ArgumentParser:
    """Create and configure argument parser."""
    parser = argparse.ArgumentParser(
        prog="discord-copilot",
        description="LLM-powered Discord chatbot with an admin dashboard",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Discord Copilot {__version__}",
    )

    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to .env file (default: .env in current directory)",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override logging level from config",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser(
        "run",
        help="Run the Discord bot (and its health endpoint)",
    )

    dashboard_parser = subparsers.add_parser(
        "dashboard",
        help="Serve the admin dashboard",
    )
    dashboard_parser.add_argument(
        "--host",
        default=None,
        help="Interface to bind (default: DASHBOARD__HOST from config)",
    )
    dashboard_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind (default: DASHBOARD__PORT from config)",
    )

    subparsers.add_parser(
        "config",
        help="Show current configuration (secrets masked)",
    )

    check_parser = subparsers.add_parser(
        "check-store",
        help="Verify the store connection by reading all three tables",
    )
    check_parser.add_argument(
        "--write",
        action="store_true",
        help="Also test a write to conversation_state (resets conversation memory)",
    )

    subparsers.add_parser(
        "reset-memory",
        help="Reset the conversation summary and reply counter",
    )

    return parser


def mask_secret(value: str, visible: int = 4) -> str:
    """Show only the first few characters of a secret."""
    if not value:
        return "Not set"
    if len(value) <= visible:
        return "*" * len(value)
    return f"{value[:visible]}{'*' * 8}"


def cmd_config(settings: Settings) -> int:
    """Show current configuration."""
    logger = get_logger(__name__)

    logger.info("\n=== Discord Copilot Configuration ===\n")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Log Level: {settings.log_level}")
    logger.info(f"Log File: {settings.log_file or 'None (console only)'}")
    logger.info(f"\nBot Name: {settings.bot.name}")
    logger.info(f"Bot Token: {mask_secret(settings.bot.token)}")
    logger.info(f"Channel Cache TTL: {settings.bot.channel_cache_ttl:g}s")
    logger.info(f"Message Limit: {settings.bot.message_limit}")
    logger.info(f"Summary Threshold: {settings.bot.summary_threshold} replies")
    logger.info(f"\nLLM Model: {settings.llm.model}")
    logger.info(f"LLM API Key: {mask_secret(settings.llm.api_key)}")
    logger.info(f"LLM API Base: {settings.llm.api_base or 'Provider default'}")
    logger.info(f"LLM Timeout: {settings.llm.timeout:g}s")
    logger.info(f"\nStore URL: {settings.store.url or 'Not set'}")
    logger.info(f"Store Service Role Key: {mask_secret(settings.store.service_role_key)}")
    logger.info(f"\nDashboard: {settings.dashboard.host}:{settings.dashboard.port}")
    logger.info(f"Dashboard Session Secret: {mask_secret(settings.dashboard.session_secret)}")
    logger.info(f"Memory Refresh: {settings.dashboard.memory_refresh_seconds}s")
    logger.info(
        f"\nHealth Server: "
        f"{f'{settings.health.host}:{settings.health.port}' if settings.health.enabled else 'Disabled'}"
    )

    return 0


def cmd_run(settings: Settings) -> int:
    """Start the Discord bot."""
    logger = get_logger(__name__)

    missing = settings.missing_bot_settings()
    if missing:
        logger.error(f"Missing required configuration: {', '.join(missing)}")
        logger.error("Add them to your .env file or environment and try again.")
        return 1

    from discord_copilot.bot import CopilotBot

    bot = CopilotBot(settings)
    logger.info(f"Starting {settings.bot.name}...")
    # log_handler=None: disable discord.py's default logging setup and use ours
    bot.run(settings.bot.token, log_handler=None)
    return 0


def cmd_dashboard(args, settings: Settings) -> int:
    """Serve the admin dashboard with uvicorn."""
    logger = get_logger(__name__)

    missing = settings.missing_dashboard_settings()
    if missing:
        logger.error(f"Missing required configuration: {', '.join(missing)}")
        return 1

    import uvicorn

    from discord_copilot.dashboard import create_app

    host = args.host or settings.dashboard.host
    port = args.port or settings.dashboard.port
    logger.info(f"Starting dashboard on http://{host}:{port}")
    uvicorn.run(create_app(settings), host=host, port=port, log_config=None)
    return 0


async def cmd_check_store(args, settings: Settings) -> int:
    """
    Read every table the bot depends on and report what was found.

    With --write, also replace the conversation summary with a marker and
    then reset conversation memory, which proves the service role key can
    write. This clears any existing summary.
    """
    logger = get_logger(__name__)

    missing = settings.missing_store_settings()
    if missing:
        logger.error(f"Missing required configuration: {', '.join(missing)}")
        return 1

    from discord_copilot.store import PersistenceAccessor, StoreError, create_store_client

    logger.info(f"Checking store at {settings.store.url}")
    try:
        async with AsyncExitStack() as stack:
            client = await create_store_client(settings.store)
            stack.push_async_callback(client.postgrest.aclose)
            store = PersistenceAccessor(client)

            instructions = await store.get_instructions_record()
            logger.info("✓ Read system_instructions")
            logger.info(f"  Content: {instructions.content[:50]!r}...")
            logger.info(f"  Updated: {instructions.updated_at or 'never'}")

            state = await store.get_conversation_record()
            logger.info("✓ Read conversation_state")
            logger.info(f"  Summary: {state.summary[:80]!r}")
            logger.info(f"  Message Count: {state.message_count}")
            logger.info(f"  Last Updated: {state.last_updated or 'never'}")

            channels = await store.list_channels()
            logger.info("✓ Read allowed_channels")
            logger.info(f"  Total channels: {len(channels)}")
            for channel in channels:
                logger.info(f"  - {channel.label} ({'enabled' if channel.is_enabled else 'disabled'})")

            if args.write:
                await store.replace_summary(WRITE_TEST_SUMMARY)
                await store.reset_conversation()
                logger.info("✓ Wrote and reset conversation_state")
    except StoreError as e:
        logger.error(f"Store check failed: {e}")
        return 1
    except Exception as e:
        logger.error(f"Store check failed: {e}", exc_info=True)
        return 1

    logger.info("\nStore check passed")
    return 0


async def cmd_reset_memory(settings: Settings) -> int:
    """Reset the conversation summary and reply counter."""
    logger = get_logger(__name__)

    missing = settings.missing_store_settings()
    if missing:
        logger.error(f"Missing required configuration: {', '.join(missing)}")
        return 1

    from discord_copilot.store import PersistenceAccessor, StoreError, create_store_client

    try:
        async with AsyncExitStack() as stack:
            client = await create_store_client(settings.store)
            stack.push_async_callback(client.postgrest.aclose)
            await PersistenceAccessor(client).reset_conversation()
    except StoreError as e:
        logger.error(f"Failed to reset memory: {e}")
        return 1
    except Exception as e:
        logger.error(f"Failed to reset memory: {e}", exc_info=True)
        return 1

    logger.info("✓ Conversation memory reset")
    return 0


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    # Load settings
    try:
        settings = load_settings(env_file=args.env_file)
    except Exception as e:
        print(f"Error loading settings: {e}", file=sys.stderr)
        return 1

    # Override log level if specified
    if args.log_level:
        settings.log_level = args.log_level

    setup_logging(settings)

    if args.command == "config":
        return cmd_config(settings)
    elif args.command == "run":
        return cmd_run(settings)
    elif args.command == "dashboard":
        return cmd_dashboard(args, settings)
    elif args.command == "check-store":
        return asyncio.run(cmd_check_store(args, settings))
    elif args.command == "reset-memory":
        return asyncio.run(cmd_reset_memory(settings))
    else:
        # Default: show help
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
