"""Keyed query cache shared by every view of a session.

Each entry stores the value, when it was fetched and the freshness policy
computed from that value. ``get`` serves fresh entries from memory and
fetches otherwise; concurrent ``get`` calls for the same key share a single
in-flight fetch. ``invalidate`` only marks an entry, so several
invalidations before the next read still cost one refetch.

When a refetch fails with a transient error (network or 5xx) and a value is
already cached, the cached value is served instead of the error.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Hashable, Iterable, Optional

from portal.gateway.logging_filters import get_logger

from .domain import strip_display_prefix
from .errors import RemoteError
from .freshness import FreshnessPolicy

logger = get_logger("portal.orders.cache")

Key = tuple[Hashable, ...]
Fetcher = Callable[[], Awaitable[Any]]
PolicyFn = Callable[[Any], FreshnessPolicy]


class OrderKeys:
    """Cache keys for order data. Ids are stored without the display prefix."""

    ALL: Key = ("orders",)

    @staticmethod
    def list() -> Key:
        return ("orders", "list")

    @staticmethod
    def detail(order_id) -> Key:
        return ("orders", "detail", strip_display_prefix(order_id))

    @staticmethod
    def status(order_id) -> Key:
        return ("orders", "status", strip_display_prefix(order_id))


class PaymentKeys:
    """Cache keys for payment data, always scoped by order id."""

    ALL: Key = ("payments",)

    @staticmethod
    def by_order(order_id) -> Key:
        return ("payments", "byOrder", strip_display_prefix(order_id))

    @staticmethod
    def status(order_id) -> Key:
        return ("payments", "status", strip_display_prefix(order_id))


@dataclass
class CacheEntry:
    value: Any
    fetched_at: float
    policy: FreshnessPolicy
    invalidated: bool = False

    def is_stale(self, now: float) -> bool:
        return self.invalidated or (now - self.fetched_at) >= self.policy.stale_after


class QueryCache:
    """In-memory cache with per-value freshness policies.

    Args:
        clock: Monotonic time source in seconds (injectable for tests).
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[Key, CacheEntry] = {}
        self._inflight: dict[Key, asyncio.Future] = {}
        self._dirty_inflight: set[Key] = set()
        self._timers: list[asyncio.TimerHandle] = []

    async def get(self, key: Key, fetch: Fetcher, policy: PolicyFn) -> Any:
        """Return the cached value for ``key``, fetching it when missing or stale.

        Args:
            key: Cache key (see ``OrderKeys`` / ``PaymentKeys``).
            fetch: Zero-argument coroutine function producing a fresh value.
            policy: Maps the fetched value to its ``FreshnessPolicy``.

        Raises:
            RemoteError: When the fetch fails and nothing usable is cached.
        """
        entry = self._entries.get(key)
        if entry is not None and not entry.is_stale(self._clock()):
            return entry.value
        return await self.refetch(key, fetch, policy)

    async def refetch(self, key: Key, fetch: Fetcher, policy: PolicyFn) -> Any:
        """Fetch ``key`` regardless of freshness, joining any in-flight fetch."""
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load(key, fetch, policy))
            self._inflight[key] = task
            task.add_done_callback(lambda _t, k=key: self._inflight.pop(k, None))
        return await asyncio.shield(task)

    async def _load(self, key: Key, fetch: Fetcher, policy: PolicyFn) -> Any:
        try:
            value = await fetch()
        except RemoteError as e:
            self._dirty_inflight.discard(key)
            entry = self._entries.get(key)
            if entry is not None and e.retryable:
                logger.warning(
                    "refetch failed, serving cached value",
                    extra={"key": list(key), "error": e.__class__.__name__},
                )
                return entry.value
            raise
        entry = CacheEntry(value=value, fetched_at=self._clock(), policy=policy(value))
        # invalidated while the fetch was running: keep the value, refetch on next read
        if key in self._dirty_inflight:
            self._dirty_inflight.discard(key)
            entry.invalidated = True
        self._entries[key] = entry
        return value

    def peek(self, key: Key) -> Optional[Any]:
        """Return the cached value without fetching (None when absent)."""
        entry = self._entries.get(key)
        return entry.value if entry is not None else None

    def set(self, key: Key, value: Any, policy: PolicyFn) -> None:
        self._entries[key] = CacheEntry(value=value, fetched_at=self._clock(), policy=policy(value))

    def policy_for(self, key: Key) -> Optional[FreshnessPolicy]:
        entry = self._entries.get(key)
        return entry.policy if entry is not None else None

    def invalidate(self, key: Key) -> None:
        """Force the next ``get(key)`` to refetch. Idempotent."""
        entry = self._entries.get(key)
        if entry is not None and not entry.invalidated:
            entry.invalidated = True
            logger.info("cache invalidated", extra={"key": list(key)})
        if key in self._inflight:
            self._dirty_inflight.add(key)

    def invalidate_prefix(self, prefix: Key) -> None:
        for key in list(self._entries):
            if key[: len(prefix)] == prefix:
                self.invalidate(key)

    def schedule_invalidation(self, keys: Iterable[Key], delay: float) -> asyncio.TimerHandle:
        """Invalidate ``keys`` after ``delay`` seconds without blocking the caller."""
        keys = list(keys)
        loop = asyncio.get_running_loop()
        handle = loop.call_later(delay, self._invalidate_many, keys)
        self._timers = [t for t in self._timers if not t.cancelled() and t.when() > loop.time()]
        self._timers.append(handle)
        logger.info("invalidation scheduled", extra={"keys": [list(k) for k in keys], "delay": delay})
        return handle

    def _invalidate_many(self, keys: list[Key]) -> None:
        for key in keys:
            self.invalidate(key)

    def close(self) -> None:
        """Cancel pending scheduled invalidations."""
        for handle in self._timers:
            handle.cancel()
        self._timers.clear()
