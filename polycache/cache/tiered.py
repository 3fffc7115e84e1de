"""
Multi-tier cache: ordered fallback reads, fan-out writes, promotion.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from .background import BackgroundTasks
from .coalescer import RequestCoalescer
from .core import MISSING, CacheLike, Milliseconds, WrapTTL
from .ttl_policies import resolve_ttl

logger = logging.getLogger("polycache.tiered")


class TieredCache:
    """
    Priority-ordered chain of caches presented as one cache.

    Index 0 is read first and is the primary promotion target. A tier that
    fails on a read is treated as empty for that call; a tier that fails
    on a write fails the write.
    """

    def __init__(
        self,
        caches: Sequence[CacheLike],
        coalescer: Optional[RequestCoalescer] = None,
    ):
        self._caches: Tuple[CacheLike, ...] = tuple(caches)
        self._coalescer = coalescer or RequestCoalescer()
        self._background = BackgroundTasks(logger)

    @property
    def caches(self) -> Tuple[CacheLike, ...]:
        return self._caches

    async def _lookup(self, key: str) -> Tuple[Any, int]:
        """Return (value, tier index) of the first hit, or (MISSING, -1)."""
        for i, cache in enumerate(self._caches):
            try:
                value = await cache.get(key)
            except Exception as e:
                logger.debug(f"Tier {i} read failed for {key}: {e!r}")
                continue
            if value is not MISSING:
                return value, i
        return MISSING, -1

    async def get(self, key: str) -> Any:
        value, _ = await self._lookup(key)
        return value

    async def set(self, key: str, value: Any, ttl: Optional[Milliseconds] = None) -> None:
        await asyncio.gather(*(cache.set(key, value, ttl) for cache in self._caches))

    async def delete(self, key: str) -> None:
        await asyncio.gather(*(cache.delete(key) for cache in self._caches))
        logger.debug(f"Invalidated {key} in {len(self._caches)} tiers")

    async def reset(self) -> None:
        await asyncio.gather(*(cache.reset() for cache in self._caches))
        logger.info(f"Reset {len(self._caches)} tiers")

    async def get_many(self, *keys: str) -> List[Any]:
        """
        Batch read across tiers.

        Each tier is asked only for the keys no higher tier has answered,
        and the walk stops as soon as every key is resolved.

        Returns:
            Values aligned with ``keys``, MISSING where no tier had one
        """
        values: List[Any] = [MISSING] * len(keys)

        for i, cache in enumerate(self._caches):
            pending = [pos for pos, v in enumerate(values) if v is MISSING]
            if not pending:
                break
            try:
                found = await cache.store.get_many(*(keys[pos] for pos in pending))
            except Exception as e:
                logger.debug(f"Tier {i} batch read failed: {e!r}")
                continue
            for pos, value in zip(pending, found):
                if value is not MISSING:
                    values[pos] = value

        return values

    async def set_many(
        self,
        entries: Sequence[Tuple[str, Any]],
        ttl: Optional[Milliseconds] = None,
    ) -> None:
        await asyncio.gather(*(cache.store.set_many(entries, ttl) for cache in self._caches))

    async def delete_many(self, *keys: str) -> None:
        await asyncio.gather(*(cache.store.delete_many(*keys) for cache in self._caches))

    async def wrap(
        self,
        key: str,
        producer: Callable[[], Awaitable[Any]],
        ttl: Optional[WrapTTL] = None,
    ) -> Any:
        """
        Get a value from the first tier that has it, computing it on a full miss.

        A miss writes the produced value to every tier. A hit in tier ``i``
        returns immediately; in the background the value is copied into
        tiers ``0..i-1`` and tier ``i`` gets its own ``wrap`` call so its
        refresh-ahead logic can run.
        """

        async def execute() -> Any:
            value, found_at = await self._lookup(key)

            if value is MISSING:
                logger.debug(f"TIERED MISS: {key}")
                result = await producer()
                await self.set(key, result, resolve_ttl(result, ttl))
                return result

            logger.debug(f"TIERED HIT: {key} [tier={found_at}]")
            cache_ttl = resolve_ttl(value, ttl)
            if found_at > 0:
                self._background.spawn(
                    self._promote(key, value, cache_ttl, found_at),
                    f"promote {key} above tier {found_at}",
                )
            self._background.spawn(
                self._caches[found_at].wrap(key, producer, ttl),
                f"wrap {key} in tier {found_at}",
            )
            return value

        return await self._coalescer.get_or_fetch(key, execute)

    async def _promote(
        self,
        key: str,
        value: Any,
        ttl: Optional[Milliseconds],
        found_at: int,
    ) -> None:
        await asyncio.gather(
            *(cache.set(key, value, ttl) for cache in self._caches[:found_at])
        )

    async def close(self) -> None:
        """Wait for pending promotions, then for each tier's own background work."""
        await self._background.join()
        for cache in self._caches:
            close = getattr(cache, "close", None)
            if close is not None:
                await close()

    def get_stats(self) -> Dict[str, Any]:
        """Get per-tier and orchestration statistics."""
        tiers = []
        for cache in self._caches:
            stats = getattr(cache, "get_stats", None)
            tiers.append(stats() if stats is not None else {"type": type(cache).__name__})
        return {
            "tier_count": len(self._caches),
            "tiers": tiers,
            "background": self._background.get_stats(),
            "coalescer": self._coalescer.get_stats(),
        }


def multi_caching(caches: Sequence[CacheLike]) -> TieredCache:
    """
    Compose caches into a tier chain, fastest first.

    Example:
        near = caching(MemoryStore(max_entries=100, ttl=1000))
        far = caching(MemoryStore(max_entries=10_000, ttl=60_000))
        cache = multi_caching([near, far])
    """
    return TieredCache(caches)
