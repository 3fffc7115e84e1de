"""
Cache coordination: single-flight wrap, refresh-ahead and tiered caching.
"""
from .core import (
    MISSING,
    CacheLike,
    Milliseconds,
    Missing,
    Store,
    UncacheableValueError,
    WrapTTL,
)
from .ttl_policies import resolve_ttl
from .coalescer import RequestCoalescer
from .manager import Cache, caching
from .tiered import TieredCache, multi_caching
from .factory import create_cache, get_cache

__all__ = [
    # Core types
    "MISSING",
    "Missing",
    "Milliseconds",
    "WrapTTL",
    "Store",
    "CacheLike",
    "UncacheableValueError",
    # TTL policies
    "resolve_ttl",
    # Coalescing
    "RequestCoalescer",
    # Caches
    "Cache",
    "caching",
    "TieredCache",
    "multi_caching",
    "create_cache",
    "get_cache",
]
