"""Short-lived in-process cache of the Emby stream connection settings.

The stream proxy hits this on every playback request, including each seek,
so the stored configuration is only re-read once the entry is older than the
configured TTL. Failed reloads are never cached: the next call tries again.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from cachetools import TTLCache

from ..errors import ConfigUnavailable
from ..models import EmbyConfig

logger = logging.getLogger(__name__)

DEFAULT_TTL_MS = 5 * 60 * 1000
_SLOT = "emby"

ConfigLoader = Callable[[], Awaitable[EmbyConfig | None]]


def _epoch_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class CachedConfig:
    """Connection parameters needed to build upstream stream URLs."""

    server_url: str
    api_key: str
    fetched_at_ms: int


class ConfigCache:
    """Single-slot cache around a configuration loader."""

    def __init__(
        self,
        loader: ConfigLoader,
        *,
        ttl_ms: int = DEFAULT_TTL_MS,
        clock: Callable[[], int] = _epoch_ms,
    ) -> None:
        self._loader = loader
        self._ttl_ms = ttl_ms
        self._clock = clock
        self._slot: TTLCache[str, CachedConfig] = TTLCache(
            maxsize=1, ttl=ttl_ms, timer=clock
        )
        self._lock = asyncio.Lock()

    @property
    def ttl_ms(self) -> int:
        return self._ttl_ms

    def peek(self) -> CachedConfig | None:
        """Return the entry if it is still fresh, without loading."""

        return self._slot.get(_SLOT)

    async def get(self) -> CachedConfig:
        """Return cached connection settings, reloading once they expire."""

        entry = self.peek()
        if entry is not None:
            return entry

        async with self._lock:
            # Another caller may have reloaded while this one was waiting.
            entry = self.peek()
            if entry is not None:
                return entry
            return await self._reload()

    async def refresh(self) -> CachedConfig:
        """Reload from the store regardless of the current entry's age."""

        async with self._lock:
            return await self._reload()

    async def _reload(self) -> CachedConfig:
        config = await self._loader()
        if config is None or not config.is_usable:
            raise ConfigUnavailable("Emby 未配置或未启用")

        api_key = config.credential
        if not api_key:
            raise ConfigUnavailable("Emby 认证信息缺失")

        entry = CachedConfig(
            server_url=config.server_url or "",
            api_key=api_key,
            fetched_at_ms=self._clock(),
        )
        self._slot[_SLOT] = entry
        logger.debug("Reloaded Emby stream configuration for %s", entry.server_url)
        return entry
