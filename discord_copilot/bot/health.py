"""
Liveness endpoint for the hosting platform.

A tiny aiohttp server started next to the bot. It always answers 200 with a
fixed body and knows nothing about the bot's internals.
"""

from __future__ import annotations

from aiohttp import web

from discord_copilot.config.logging import get_logger

logger = get_logger(__name__)

HEALTH_BODY = "Bot is alive!"


async def handle_health(_request: web.Request) -> web.Response:
    return web.Response(text=HEALTH_BODY)


def create_health_app() -> web.Application:
    app = web.Application()
    app.router.add_get("/", handle_health)
    app.router.add_get("/health", handle_health)
    return app


class HealthServer:
    """
    Async context manager running the health app on host:port.

    Example:
        >>> async with HealthServer("0.0.0.0", 8080):
        ...     await bot.start(token)
    """

    def __init__(self, host: str, port: int):
        self.host = host
        self.port = port
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        self._runner = web.AppRunner(create_health_app(), access_log=None)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info(f"Health check server running on {self.host}:{self.port}")

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Health check server stopped")

    async def __aenter__(self) -> HealthServer:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
