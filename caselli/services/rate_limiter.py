"""
Per-owner cooldown for background memory extraction.

Extraction costs a model call, so it runs at most once per owner per
cooldown window. Storage and clock are injected: production uses a bounded
cachetools TTLCache on the monotonic clock, tests pass a fake timer.
"""

import asyncio
from time import monotonic
from typing import Callable, Hashable, Optional, Protocol

from cachetools import TTLCache

from caselli.utils.logging import get_logger

logger = get_logger(__name__)


class CooldownStorage(Protocol):
    """Anything that forgets keys once their window has elapsed."""

    def __contains__(self, key: object) -> bool: ...

    def __setitem__(self, key: Hashable, value: float) -> None: ...


def ttl_storage(
    ttl_seconds: float,
    maxsize: int = 10_000,
    timer: Callable[[], float] = monotonic,
) -> TTLCache:
    return TTLCache(maxsize=maxsize, ttl=ttl_seconds, timer=timer)


class CooldownLimiter:
    """
    Allows one acquisition per key per window.

    Args:
        cooldown_seconds: Window length
        storage: Where live windows are kept (defaults to a TTLCache)
        clock: Time source, only used to stamp entries
    """

    def __init__(
        self,
        cooldown_seconds: float,
        storage: Optional[CooldownStorage] = None,
        clock: Callable[[], float] = monotonic,
        max_keys: int = 10_000,
    ):
        self.cooldown_seconds = cooldown_seconds
        self.clock = clock
        self.storage = (
            storage
            if storage is not None
            else ttl_storage(cooldown_seconds, maxsize=max_keys, timer=clock)
        )
        self._lock = asyncio.Lock()

    async def try_acquire(self, key: Hashable) -> bool:
        """True (and the window starts) if the key is not cooling down."""
        async with self._lock:
            if key in self.storage:
                logger.debug("Cooldown active", key=str(key))
                return False
            self.storage[key] = self.clock()
            return True
