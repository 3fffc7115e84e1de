"""
Bounded in-memory store with LRU eviction and per-key expiry.
"""
import copy
import fnmatch
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from polycache.cache.core import MISSING, Milliseconds, UncacheableValueError

logger = logging.getLogger("polycache.stores.memory")

DEFAULT_MAX_ENTRIES = 500


def _is_cacheable(value: Any) -> bool:
    return value is not MISSING


def _now_ms() -> float:
    return time.monotonic() * 1000


@dataclass
class StoredItem:
    """A value with its absolute expiry (monotonic ms), None for no expiry."""
    value: Any
    expires_at: Optional[float] = None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class MemoryStore:
    """
    LRU map of key -> value with optional per-key TTL.

    Expired entries are dropped lazily when touched, or when they reach the
    LRU end during eviction. Satisfies the Store contract.

    Usage:
        store = MemoryStore(max_entries=1000, ttl=60_000)
        await store.set("user:1", {"name": "Ada"})
        await store.ttl("user:1")  # ~60000
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        ttl: Milliseconds = 0,
        clone_before_set: bool = True,
        is_cacheable: Optional[Callable[[Any], bool]] = None,
    ):
        """
        Args:
            max_entries: Maximum live entries before the least recently used is evicted
            ttl: Default TTL in ms applied when set() gets none; 0 means no expiry
            clone_before_set: Deep-copy values on write so callers can't mutate cached data
            is_cacheable: Predicate rejecting values; defaults to rejecting MISSING
        """
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._max_entries = max_entries
        self._default_ttl = ttl
        self._clone_before_set = clone_before_set
        self._is_cacheable = is_cacheable or _is_cacheable
        self._items: "OrderedDict[str, StoredItem]" = OrderedDict()

    # -- internal helpers -----------------------------------------------------

    def _lookup(self, key: str) -> Optional[StoredItem]:
        item = self._items.get(key)
        if item is None:
            return None
        if item.is_expired(_now_ms()):
            del self._items[key]
            return None
        return item

    def _read(self, key: str) -> Any:
        item = self._lookup(key)
        if item is None:
            return MISSING
        self._items.move_to_end(key)
        return item.value

    def _write(self, key: str, value: Any, ttl: Optional[Milliseconds]) -> None:
        if not self._is_cacheable(value):
            raise UncacheableValueError(value)
        if self._clone_before_set:
            value = copy.deepcopy(value)

        effective_ttl = self._default_ttl if ttl is None else ttl
        expires_at = _now_ms() + effective_ttl if effective_ttl and effective_ttl > 0 else None

        self._items[key] = StoredItem(value=value, expires_at=expires_at)
        self._items.move_to_end(key)
        while len(self._items) > self._max_entries:
            evicted, _ = self._items.popitem(last=False)
            logger.debug(f"Evicted {evicted}")

    # -- Store contract -------------------------------------------------------

    async def get(self, key: str) -> Any:
        return self._read(key)

    async def set(self, key: str, value: Any, ttl: Optional[Milliseconds] = None) -> None:
        self._write(key, value, ttl)

    async def delete(self, key: str) -> None:
        self._items.pop(key, None)

    async def reset(self) -> None:
        self._items.clear()

    async def get_many(self, *keys: str) -> List[Any]:
        return [self._read(key) for key in keys]

    async def set_many(
        self,
        entries: Sequence[Tuple[str, Any]],
        ttl: Optional[Milliseconds] = None,
    ) -> None:
        for key, value in entries:
            self._write(key, value, ttl)

    async def delete_many(self, *keys: str) -> None:
        for key in keys:
            self._items.pop(key, None)

    async def keys(self, pattern: Optional[str] = None) -> List[str]:
        now = _now_ms()
        live = [k for k, item in self._items.items() if not item.is_expired(now)]
        if pattern is None:
            return live
        return [k for k in live if fnmatch.fnmatchcase(k, pattern)]

    async def ttl(self, key: str) -> Milliseconds:
        """Remaining lifetime in ms; -1 when the key never expires or is absent."""
        item = self._lookup(key)
        if item is None or item.expires_at is None:
            return -1
        return max(0.0, item.expires_at - _now_ms())

    # -- introspection (not part of the Store contract) -----------------------

    @property
    def size(self) -> int:
        """Number of stored entries, including expired ones not yet purged."""
        return len(self._items)

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def dump(self) -> List[Tuple[str, Dict[str, Any]]]:
        """
        Snapshot live entries, least recently used first.

        Each entry carries the value and its remaining TTL in ms (None for
        no expiry), suitable for load() into another store.
        """
        now = _now_ms()
        entries = []
        for key, item in self._items.items():
            if item.is_expired(now):
                continue
            remaining = None if item.expires_at is None else item.expires_at - now
            entries.append((key, {"value": item.value, "ttl": remaining}))
        return entries

    def load(self, entries: Iterable[Tuple[str, Dict[str, Any]]]) -> None:
        """Restore entries produced by dump(). Existing keys are overwritten."""
        for key, entry in entries:
            remaining = entry.get("ttl")
            # 0 would mean "no expiry" to _write; an exhausted TTL is just dropped
            if remaining is not None and remaining <= 0:
                continue
            self._write(key, entry["value"], remaining if remaining is not None else 0)
