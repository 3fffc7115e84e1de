"""
Request coalescing to prevent duplicate recomputation of the same key.

When multiple concurrent tasks ask for the same key, only one producer
call is made and all requesters share the result.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict

logger = logging.getLogger("polycache.coalescer")


@dataclass
class InFlightRequest:
    """Tracks an in-progress producer call."""
    future: asyncio.Future
    started_at: float = field(default_factory=time.monotonic)
    waiter_count: int = 0


class RequestCoalescer:
    """
    Ensures concurrent requests for the same cache key share one producer call.

    Pattern:
    - First request for a key initiates the fetch
    - Subsequent requests for the same key await the shared future
    - When the fetch settles, all waiters receive the same result or error
    - The registry entry is dropped as soon as the fetch settles

    All access happens on one event loop and registry updates never span an
    await, so no lock is taken.

    Usage:
        coalescer = RequestCoalescer()
        result = await coalescer.get_or_fetch(
            cache_key="user:42",
            fetch_fn=load_user,
        )
    """

    def __init__(self):
        self._in_flight: Dict[str, InFlightRequest] = {}

    async def get_or_fetch(
        self,
        cache_key: str,
        fetch_fn: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Either join an existing in-flight request or initiate a new one.

        Args:
            cache_key: Unique key for this request
            fetch_fn: Coroutine function to call if we need to fetch

        Returns:
            The fetched data (shared among all concurrent callers)

        Raises:
            BaseException: Any error from fetch_fn is propagated to every caller
        """
        in_flight = self._in_flight.get(cache_key)
        if in_flight is not None:
            # Join existing request
            in_flight.waiter_count += 1
            logger.debug(
                f"Coalescing request for {cache_key} "
                f"(waiters: {in_flight.waiter_count})"
            )
            # A cancelled waiter must not cancel the shared execution
            return await asyncio.shield(in_flight.future)

        in_flight = InFlightRequest(future=asyncio.get_running_loop().create_future())
        self._in_flight[cache_key] = in_flight
        logger.debug(f"Initiating fetch for {cache_key}")

        try:
            result = await fetch_fn()
        except asyncio.CancelledError:
            in_flight.future.cancel()
            raise
        except BaseException as e:
            # Any other outcome, KeyboardInterrupt included, must settle the waiters
            logger.warning(f"Fetch failed for {cache_key}: {e}")
            in_flight.future.set_exception(e)
            # Mark retrieved so an unwatched failure does not warn on GC
            in_flight.future.exception()
            raise
        else:
            in_flight.future.set_result(result)
            return result
        finally:
            if self._in_flight.get(cache_key) is in_flight:
                del self._in_flight[cache_key]

    @property
    def active_requests(self) -> int:
        """Number of currently in-flight requests."""
        return len(self._in_flight)

    def get_stats(self) -> Dict[str, Any]:
        """Get coalescer statistics."""
        return {
            "active_requests": len(self._in_flight),
            "active_keys": list(self._in_flight.keys()),
        }
