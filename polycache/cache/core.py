"""
Core cache types: the absence sentinel, store/cache contracts and errors.
"""
from enum import Enum
from typing import (
    Any,
    Awaitable,
    Callable,
    List,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    Union,
    runtime_checkable,
)

# Durations are expressed in milliseconds throughout. 0 means "no expiry".
Milliseconds = Union[int, float]

# A TTL given to wrap(): a literal duration or a function of the produced value.
WrapTTL = Union[Milliseconds, Callable[[Any], Milliseconds]]


class Missing(Enum):
    """Marker type for "no value in cache"."""
    MISSING = "missing"

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


# Returned by every read on a miss. None, 0 and "" are ordinary values.
MISSING = Missing.MISSING


class UncacheableValueError(ValueError):
    """Raised by a store when its cacheability predicate rejects a value."""

    def __init__(self, value: Any):
        self.value = value
        super().__init__(f"no cacheable value {value!r}")


@runtime_checkable
class Store(Protocol):
    """
    Contract every storage backend must satisfy.

    All methods are coroutines. Reads return MISSING for absent keys.
    ``ttl()`` returns the remaining lifetime in milliseconds, or a negative
    number when the key never expires or its lifetime is unknown.
    """

    async def get(self, key: str) -> Any: ...

    async def set(self, key: str, value: Any, ttl: Optional[Milliseconds] = None) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def reset(self) -> None: ...

    async def get_many(self, *keys: str) -> List[Any]: ...

    async def set_many(
        self,
        entries: Sequence[Tuple[str, Any]],
        ttl: Optional[Milliseconds] = None,
    ) -> None: ...

    async def delete_many(self, *keys: str) -> None: ...

    async def keys(self, pattern: Optional[str] = None) -> List[str]: ...

    async def ttl(self, key: str) -> Milliseconds: ...


@runtime_checkable
class CacheLike(Protocol):
    """The single-tier surface a TieredCache member must expose."""

    @property
    def store(self) -> Store: ...

    async def get(self, key: str) -> Any: ...

    async def set(self, key: str, value: Any, ttl: Optional[Milliseconds] = None) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def reset(self) -> None: ...

    async def wrap(
        self,
        key: str,
        producer: Callable[[], Awaitable[Any]],
        ttl: Optional[WrapTTL] = None,
    ) -> Any: ...
