"""
polycache - cache coordination over interchangeable key/value stores.

    from polycache import caching, multi_caching, MemoryStore

    near = caching(MemoryStore(max_entries=100, ttl=1000))
    far = caching(MemoryStore(ttl=60_000), refresh_threshold=10_000)
    cache = multi_caching([near, far])

    user = await cache.wrap(f"user:{uid}", lambda: load_user(uid))
"""
from polycache.cache import (
    MISSING,
    Cache,
    CacheLike,
    Missing,
    RequestCoalescer,
    Store,
    TieredCache,
    UncacheableValueError,
    caching,
    create_cache,
    get_cache,
    multi_caching,
    resolve_ttl,
)
from polycache.stores import MemoryStore

__version__ = "0.1.0"

__all__ = [
    "MISSING",
    "Missing",
    "Store",
    "CacheLike",
    "UncacheableValueError",
    "RequestCoalescer",
    "Cache",
    "caching",
    "TieredCache",
    "multi_caching",
    "create_cache",
    "get_cache",
    "resolve_ttl",
    "MemoryStore",
]
