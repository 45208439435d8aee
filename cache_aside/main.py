"""
Cache-Aside demo service

GET /helloget/{id} reads a greeting through CacheAsideAccessor:
1. Try Redis
2. On miss, read the row from Postgres (one query per key, however many
   requests arrive at once)
3. Store it in Redis for an hour

Redis being down makes reads slower, never failing.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import asyncpg
from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel

from .accessor import CacheAsideAccessor, CacheStats
from .backends import RedisCacheBackend
from .codec import KeyCodec
from .config import Settings
from .errors import FetchErrorKind, StoreFetchError
from .store import AuthoritativeStore, PostgresStore

logger = logging.getLogger(__name__)


class Greeting(BaseModel):
    id: int
    message: str


class Health(BaseModel):
    cache_available: bool
    in_flight: int


_STATUS_BY_KIND = {
    FetchErrorKind.NOT_FOUND: 404,
    FetchErrorKind.TIMEOUT: 504,
    FetchErrorKind.STORE_ERROR: 503,
    FetchErrorKind.CANCELLED: 503,
}


def create_app(
    settings: Optional[Settings] = None,
    accessor: Optional[CacheAsideAccessor] = None,
    store: Optional[AuthoritativeStore] = None,
) -> FastAPI:
    """
    Build the service.

    Passing accessor and store skips connecting to Redis and Postgres; the
    lifespan only opens (and later closes) what was not injected.
    """
    settings = settings or Settings()
    logging.basicConfig(level=settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        db_pool = None
        cache = None
        if app.state.store is None:
            db_pool = await asyncpg.create_pool(settings.database_url, min_size=5, max_size=20)
            app.state.store = PostgresStore(db_pool, "hello", ("id", "message"), model=Greeting)
        if app.state.accessor is None:
            cache = RedisCacheBackend.from_url(
                settings.redis_url,
                timeout=settings.cache_timeout,
                health_check_interval=settings.health_check_interval,
            )
            codec = KeyCodec(namespace=settings.key_namespace, model=Greeting)
            app.state.accessor = CacheAsideAccessor.from_settings(cache, settings, codec)
        logger.info("Cache-aside service started")
        yield
        # Shutdown
        if db_pool is not None:
            await db_pool.close()
        if cache is not None:
            await cache.close()

    app = FastAPI(title="Cache-Aside Pattern", lifespan=lifespan)
    app.state.settings = settings
    app.state.accessor = accessor
    app.state.store = store

    @app.get("/helloget/{greeting_id}", response_model=Greeting)
    async def get_greeting(greeting_id: int, request: Request):
        accessor: CacheAsideAccessor = request.app.state.accessor
        store: AuthoritativeStore = request.app.state.store
        key = accessor.codec.make_key("hello", greeting_id)

        try:
            return await accessor.fetch(key, store.fetcher(greeting_id))
        except StoreFetchError as e:
            if e.not_found:
                raise HTTPException(status_code=404, detail="Greeting not found")
            raise HTTPException(status_code=_STATUS_BY_KIND[e.kind], detail=str(e))

    @app.get("/stats", response_model=CacheStats)
    async def get_stats(request: Request):
        """Get cache hit/miss statistics."""
        return request.app.state.accessor.stats()

    @app.get("/health", response_model=Health)
    async def get_health(request: Request):
        accessor: CacheAsideAccessor = request.app.state.accessor
        return Health(
            cache_available=await accessor.cache.is_available(),
            in_flight=len(accessor.registry),
        )

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
