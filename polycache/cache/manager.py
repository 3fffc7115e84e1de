"""
Single-tier cache orchestration with request coalescing and refresh-ahead.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from .background import BackgroundTasks
from .coalescer import RequestCoalescer
from .core import MISSING, Milliseconds, Store, WrapTTL
from .ttl_policies import resolve_ttl

logger = logging.getLogger("polycache.manager")


class Cache:
    """
    One store behind a get/set/delete/wrap contract, with:
    - Request coalescing for concurrent wraps of the same key
    - Refresh-ahead: values close to expiry are served while a background
      task recomputes them
    - Plain reads and writes delegated to the store untouched
    """

    def __init__(
        self,
        store: Store,
        refresh_threshold: Optional[Milliseconds] = None,
        coalescer: Optional[RequestCoalescer] = None,
    ):
        """
        Initialize the cache.

        Args:
            store: Backend satisfying the Store contract
            refresh_threshold: Remaining TTL (ms) under which a hit triggers
                a background refresh. None disables refresh-ahead.
            coalescer: Shared coalescing scope; a private one is created if omitted
        """
        self._store = store
        self._refresh_threshold = refresh_threshold
        self._coalescer = coalescer or RequestCoalescer()
        self._background = BackgroundTasks(logger)
        self._refreshing: Set[str] = set()

    @property
    def store(self) -> Store:
        return self._store

    @property
    def refresh_threshold(self) -> Optional[Milliseconds]:
        return self._refresh_threshold

    async def get(self, key: str) -> Any:
        return await self._store.get(key)

    async def set(self, key: str, value: Any, ttl: Optional[Milliseconds] = None) -> None:
        await self._store.set(key, value, ttl)

    async def delete(self, key: str) -> None:
        await self._store.delete(key)
        logger.debug(f"Invalidated cache: {key}")

    async def reset(self) -> None:
        await self._store.reset()
        logger.info("Cache reset")

    async def wrap(
        self,
        key: str,
        producer: Callable[[], Awaitable[Any]],
        ttl: Optional[WrapTTL] = None,
    ) -> Any:
        """
        Get a value from cache, computing and storing it on a miss.

        Concurrent calls for the same key share one execution. On a hit whose
        remaining TTL is below the refresh threshold, the cached value is
        returned right away and the producer runs in the background.

        Args:
            key: Cache key
            producer: Coroutine function computing the value
            ttl: Milliseconds, or a function of the value returning milliseconds

        Returns:
            The cached or freshly produced value

        Raises:
            Exception: Producer and store errors are propagated unchanged
        """

        async def execute() -> Any:
            value = await self._store.get(key)

            if value is MISSING:
                logger.debug(f"CACHE MISS: {key}")
                result = await producer()
                await self._store.set(key, result, resolve_ttl(result, ttl))
                return result

            if self._refresh_threshold:
                cache_ttl = resolve_ttl(value, ttl)
                remaining = await self._store.ttl(key)
                if remaining is not None and 0 <= remaining < self._refresh_threshold:
                    logger.debug(
                        f"CACHE HIT (refreshing): {key} [remaining={remaining}ms]"
                    )
                    self._trigger_background_refresh(key, producer, cache_ttl)
                    return value

            logger.debug(f"CACHE HIT: {key}")
            return value

        return await self._coalescer.get_or_fetch(key, execute)

    def _trigger_background_refresh(
        self,
        key: str,
        producer: Callable[[], Awaitable[Any]],
        ttl: Optional[Milliseconds],
    ) -> None:
        """Recompute a value without blocking the caller."""
        if key in self._refreshing:
            logger.debug(f"Already refreshing: {key}")
            return
        self._refreshing.add(key)

        async def do_refresh() -> None:
            result = await producer()
            await self._store.set(key, result, ttl)
            logger.debug(f"Background refresh complete: {key}")

        task = self._background.spawn(do_refresh(), f"refresh {key}")
        # Runs even when the task is cancelled before its first step
        task.add_done_callback(lambda _: self._refreshing.discard(key))

    async def close(self) -> None:
        """Wait for pending background refreshes to settle."""
        await self._background.join()

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        size = getattr(self._store, "size", None)
        return {
            "store": type(self._store).__name__,
            "entries": size,
            "refresh_threshold_ms": self._refresh_threshold,
            "refreshing_count": len(self._refreshing),
            "background": self._background.get_stats(),
            "coalescer": self._coalescer.get_stats(),
        }


def caching(
    store: Store,
    refresh_threshold: Optional[Milliseconds] = None,
) -> Cache:
    """
    Wrap a store in a Cache.

    Example:
        cache = caching(MemoryStore(ttl=5000), refresh_threshold=1000)
        user = await cache.wrap(f"user:{uid}", lambda: load_user(uid))
    """
    return Cache(store, refresh_threshold=refresh_threshold)
