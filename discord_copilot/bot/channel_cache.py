"""
In-memory projection of the channel allow-list.

The cache is owned by the bot and injected into the message handler. It is
refreshed at most once per TTL; a failed refresh keeps the previous set and
timestamp, so admission keeps working on stale data instead of flipping open
or closed. Until the first successful refresh the set is empty and only
mentions are answered.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Protocol

from discord_copilot.config.logging import get_logger

logger = get_logger(__name__)


class ChannelSource(Protocol):
    async def fetch_enabled_channel_ids(self) -> frozenset[str]: ...


class ChannelCache:
    """
    Time-bounded set of enabled channel ids.

    Args:
        source: Object providing fetch_enabled_channel_ids() (normally the
                PersistenceAccessor); it must raise on failure
        ttl: Seconds before a refresh is attempted again (default: 60)
        clock: Monotonic clock in seconds; injectable for tests
    """

    def __init__(
        self,
        source: ChannelSource,
        ttl: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._source = source
        self._ttl = ttl
        self._clock = clock
        self._channel_ids: frozenset[str] = frozenset()
        self._last_refresh: float | None = None

    @property
    def channel_ids(self) -> frozenset[str]:
        return self._channel_ids

    @property
    def last_refresh(self) -> float | None:
        return self._last_refresh

    def is_stale(self) -> bool:
        if self._last_refresh is None:
            return True
        return self._clock() - self._last_refresh > self._ttl

    async def refresh(self, force: bool = False) -> bool:
        """
        Reload the set if it is stale (or when forced).

        Returns:
            True if the set was replaced, False if it was fresh or the reload failed
        """
        if not force and not self.is_stale():
            return False

        now = self._clock()
        try:
            channel_ids = await self._source.fetch_enabled_channel_ids()
        except Exception as e:
            age = "never refreshed" if self._last_refresh is None else f"{now - self._last_refresh:.0f}s"
            logger.warning(
                f"Failed to refresh allowed channels cache, using cached channels "
                f"(cache age: {age}): {e}"
            )
            return False

        # Wholesale replacement; readers never see a partially built set
        self._channel_ids = frozenset(channel_ids)
        self._last_refresh = now
        logger.info(f"Refreshed allowed channels cache ({len(self._channel_ids)} channels)")
        return True

    def is_admitted(self, channel_id: str) -> bool:
        return channel_id in self._channel_ids
