"""
rate_limiter.py — Per-recipient notification cooldowns.

A send is authorized at most once per cooldown window for a given
(channel class, recipient key). Authorization stamps the window start
in the same step as the check, so a failed delivery still consumes the
window until it expires.

═══════════════════════════════════════════════════════════════════════════
STORES
═══════════════════════════════════════════════════════════════════════════

    InMemoryRateLimitStore   process-local dict; prune() compacts expired
                             entries (the orchestrator calls it once per
                             cycle so the map stays bounded by the set of
                             recently notified contacts)
    RedisRateLimitStore      SET key NX PX <window>: atomic check-and-set,
                             expiry handled by Redis, shared across workers

Both implement ``try_acquire``; RateLimiter only talks to that method.
"""

from __future__ import annotations

import logging
import time
from datetime import timedelta
from typing import Callable, Dict, Optional, Protocol, Tuple

from backend.app.alerts.models import ChannelClass
from backend.app.core.config import settings
from backend.app.core.errors import ConfigurationError

logger = logging.getLogger(__name__)


COOLDOWN_WINDOWS: Dict[ChannelClass, timedelta] = {
    ChannelClass.ALERTA:   timedelta(hours=5),
    ChannelClass.CADASTRO: timedelta(hours=1),
}


class RateLimitStore(Protocol):
    async def try_acquire(
        self,
        channel_class: ChannelClass,
        recipient_key: str,
        window_seconds: float,
        now: float,
    ) -> bool:
        """Stamp ``now`` and return True unless a stamp younger than the window exists."""
        ...

    def prune(self, now: float) -> int:
        ...


class InMemoryRateLimitStore:
    """Last-authorized timestamps (epoch seconds) keyed by (class, recipient)."""

    def __init__(self) -> None:
        self._last_sent: Dict[Tuple[ChannelClass, str], float] = {}

    async def try_acquire(
        self,
        channel_class: ChannelClass,
        recipient_key: str,
        window_seconds: float,
        now: float,
    ) -> bool:
        # No await between read and write: atomic on the event loop
        key = (channel_class, recipient_key)
        last = self._last_sent.get(key)
        if last is None or now - last >= window_seconds:
            self._last_sent[key] = now
            return True
        return False

    def last_sent(self, channel_class: ChannelClass, recipient_key: str) -> Optional[float]:
        return self._last_sent.get((channel_class, recipient_key))

    def prune(self, now: float) -> int:
        """Drop entries whose window has elapsed. Returns how many were removed."""
        expired = [
            key for key, stamp in self._last_sent.items()
            if now - stamp >= COOLDOWN_WINDOWS[key[0]].total_seconds()
        ]
        for key in expired:
            del self._last_sent[key]
        if expired:
            logger.debug("Pruned %d expired cooldown entries", len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._last_sent)


class RedisRateLimitStore:
    """Cooldowns as expiring Redis keys: ``<prefix>:<class>:<recipient>``."""

    def __init__(self, client, prefix: str = "ratelimit") -> None:
        self._client = client
        self._prefix = prefix

    def _key(self, channel_class: ChannelClass, recipient_key: str) -> str:
        return f"{self._prefix}:{channel_class.value}:{recipient_key}"

    async def try_acquire(
        self,
        channel_class: ChannelClass,
        recipient_key: str,
        window_seconds: float,
        now: float,
    ) -> bool:
        acquired = await self._client.set(
            self._key(channel_class, recipient_key),
            str(now),
            nx=True,
            px=int(window_seconds * 1000),
        )
        return bool(acquired)

    def prune(self, now: float) -> int:
        return 0  # Redis expires keys on its own


class RateLimiter:
    """
    Decide whether a notification may be sent now.

    Parameters
    ----------
    store : RateLimitStore
        Backing store; defaults to a fresh in-memory store.
    clock : callable
        Returns the current time in epoch seconds (injectable for tests).
    """

    def __init__(
        self,
        store: Optional[RateLimitStore] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store if store is not None else InMemoryRateLimitStore()
        self._clock = clock

    async def maybe_authorize(self, recipient_key: str, channel_class: ChannelClass) -> bool:
        window = COOLDOWN_WINDOWS[channel_class].total_seconds()
        allowed = await self.store.try_acquire(
            channel_class, recipient_key, window, self._clock()
        )
        if not allowed:
            logger.info(
                "Cooldown active for %s (%s)", recipient_key, channel_class.value,
                extra={"recipient": recipient_key, "channel_class": channel_class.value},
            )
        return allowed

    def prune(self) -> int:
        return self.store.prune(self._clock())


def build_rate_limiter() -> RateLimiter:
    """Rate limiter backed by the store named in RATE_LIMIT_BACKEND."""
    backend = settings.RATE_LIMIT_BACKEND
    if backend == "redis":
        from backend.app.core.cache import get_redis
        store: RateLimitStore = RedisRateLimitStore(
            get_redis(), prefix=settings.RATE_LIMIT_KEY_PREFIX
        )
    elif backend == "memory":
        store = InMemoryRateLimitStore()
    else:
        raise ConfigurationError(
            "RATE_LIMIT_BACKEND", f"Unknown rate limit backend: {backend}"
        )
    logger.info("Rate limiter using %s store", backend)
    return RateLimiter(store)
