"""
TTL resolution for wrapped producers.
"""
from typing import Any, Optional

from .core import Milliseconds, WrapTTL


def resolve_ttl(value: Any, ttl: Optional[WrapTTL] = None) -> Optional[Milliseconds]:
    """
    Turn a wrap() TTL specification into a concrete duration.

    Args:
        value: The value about to be cached (or already cached, on a hit)
        ttl: Milliseconds, a callable of the value, or None for the store default

    Returns:
        Milliseconds, or None to let the store apply its own default
    """
    if callable(ttl):
        return ttl(value)
    return ttl
