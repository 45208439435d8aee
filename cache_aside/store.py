"""
Authoritative stores.

The accessor never talks to a store directly: it only calls the zero-argument
fetch function handed to it. fetcher() binds a store and an identity into such
a function.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, Sequence, Type

import asyncpg
from pydantic import BaseModel

from .errors import NotFound, StoreError

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class AuthoritativeStore(ABC):
    """Source of truth that produces a value for a query identity."""

    @abstractmethod
    async def fetch(self, identity: Any) -> Any:
        """Return the value for identity, or raise NotFound / StoreError."""

    def fetcher(self, identity: Any) -> Callable[[], Awaitable[Any]]:
        async def fetch_fn():
            return await self.fetch(identity)

        return fetch_fn


class PostgresStore(AuthoritativeStore):
    """
    Single-table lookup by primary key over an asyncpg pool.

    Table and column names are interpolated into the query, so they are
    checked against a plain identifier pattern up front.
    """

    def __init__(
        self,
        pool: asyncpg.Pool,
        table: str,
        columns: Sequence[str],
        key_column: str = "id",
        model: Optional[Type[BaseModel]] = None,
    ):
        if not columns:
            raise ValueError("at least one column is required")
        for name in (table, key_column, *columns):
            if not _IDENTIFIER.match(name):
                raise ValueError(f"invalid SQL identifier: {name!r}")

        self.pool = pool
        self.table = table
        self.model = model
        self.query = f"SELECT {', '.join(columns)} FROM {table} WHERE {key_column} = $1"

    async def fetch(self, identity: Any) -> Any:
        try:
            row = await self.pool.fetchrow(self.query, identity)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            logger.error(f"Query on {self.table} failed for {identity!r}: {e}")
            raise StoreError(f"{self.table} lookup failed: {e}") from e

        if row is None:
            raise NotFound(f"{self.table} {identity!r} not found")

        if self.model is not None:
            return self.model(**dict(row))
        return dict(row)
