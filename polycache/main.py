"""
polycache inspection API - health, stats and manual invalidation over HTTP.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel

from config.settings import settings
from polycache import __version__
from polycache.cache import MISSING, get_cache
from polycache.cache.factory import AnyCache

APP_NAME = "polycache"

logger = logging.getLogger("polycache.main")


class EntryResponse(BaseModel):
    """One cached entry."""
    key: str
    value: Any = None


class KeysResponse(BaseModel):
    keys: List[str]


class DeleteResponse(BaseModel):
    key: str
    deleted: bool


def _first_store(cache: AnyCache):
    """The store behind a single cache, or behind the first tier of a tiered one."""
    store = getattr(cache, "store", None)
    if store is None:
        store = cache.caches[0].store
    return store


def create_app(cache: Optional[AnyCache] = None) -> FastAPI:
    """
    Build the inspection app.

    Args:
        cache: Cache to expose. Defaults to the global cache from settings.
    """
    app = FastAPI(
        title=f"{APP_NAME} inspection",
        description="Health, statistics and invalidation for a polycache cache",
        version=__version__,
    )

    # Only the package logger; the root logger belongs to whoever runs the app
    logging.getLogger(APP_NAME).setLevel(settings.log_level)

    def current() -> AnyCache:
        return cache if cache is not None else get_cache()

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "ok"}

    @app.get("/cache/stats")
    def cache_stats() -> Dict[str, Any]:
        """Get cache statistics."""
        return current().get_stats()

    @app.get("/cache/keys", response_model=KeysResponse)
    async def cache_keys(
        pattern: Optional[str] = Query(default=None, description="Shell-style key pattern"),
    ):
        """List keys of the first-tier store."""
        keys = await _first_store(current()).keys(pattern)
        return KeysResponse(keys=sorted(keys))

    @app.get("/cache/entries/{key}", response_model=EntryResponse)
    async def get_entry(key: str):
        """Read one entry through the cache (all tiers)."""
        value = await current().get(key)
        if value is MISSING:
            raise HTTPException(status_code=404, detail=f"Key not cached: {key}")
        return EntryResponse(key=key, value=value)

    @app.delete("/cache/entries/{key}", response_model=DeleteResponse)
    async def delete_entry(key: str):
        """Invalidate one key in every tier."""
        await current().delete(key)
        logger.info(f"Invalidated via API: {key}")
        return DeleteResponse(key=key, deleted=True)

    @app.post("/cache/reset")
    async def reset_cache() -> Dict[str, Any]:
        """Clear every tier."""
        await current().reset()
        return {"reset": True}

    return app


app = create_app()
