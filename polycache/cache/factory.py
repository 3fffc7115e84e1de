"""
Build caches from settings.
"""
import logging
from typing import Optional, Union

from config.settings import Settings, settings as default_settings

from polycache.stores.memory import MemoryStore

from .manager import Cache
from .tiered import TieredCache

logger = logging.getLogger("polycache.factory")

AnyCache = Union[Cache, TieredCache]


def create_cache(settings: Optional[Settings] = None) -> AnyCache:
    """
    Instantiate the configured cache.

    Args:
        settings: Cache settings. Defaults to the process-wide settings.

    Returns:
        A memory-backed Cache, or a TieredCache of them when
        ``cache_tiers`` is greater than 1.
    """
    settings = settings or default_settings
    if settings.cache_tiers < 1:
        raise ValueError(f"cache_tiers must be at least 1, got {settings.cache_tiers}")

    def make_tier() -> Cache:
        store = MemoryStore(
            max_entries=settings.cache_max_entries,
            ttl=settings.cache_default_ttl_ms,
            clone_before_set=settings.cache_clone_before_set,
        )
        return Cache(store, refresh_threshold=settings.cache_refresh_threshold_ms)

    if settings.cache_tiers == 1:
        return make_tier()

    logger.info(f"Building tiered cache with {settings.cache_tiers} memory tiers")
    return TieredCache([make_tier() for _ in range(settings.cache_tiers)])


# Global cache instance
_cache: Optional[AnyCache] = None


def get_cache() -> AnyCache:
    """Get or create the global cache."""
    global _cache
    if _cache is None:
        _cache = create_cache()
    return _cache
