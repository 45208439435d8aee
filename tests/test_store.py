"""
Unit tests for PostgresStore.
"""

from unittest.mock import AsyncMock, MagicMock

import asyncpg
import pytest
from pydantic import BaseModel

from cache_aside import NotFound, PostgresStore, StoreError


class User(BaseModel):
    id: int
    name: str
    age: int


@pytest.fixture
def pool():
    pool = MagicMock()
    pool.fetchrow = AsyncMock(return_value={"id": 1, "name": "Ada", "age": 36})
    return pool


class TestPostgresStore:
    def test_builds_parameterised_query(self, pool):
        store = PostgresStore(pool, "users", ("id", "name", "age"))
        assert store.query == "SELECT id, name, age FROM users WHERE id = $1"

    @pytest.mark.parametrize(
        "table,columns,key_column",
        [
            ("users; DROP TABLE users", ("id",), "id"),
            ("users", ("id", "name--"), "id"),
            ("users", ("id",), "1id"),
            ("users", (), "id"),
        ],
    )
    def test_rejects_bad_identifiers(self, pool, table, columns, key_column):
        with pytest.raises(ValueError):
            PostgresStore(pool, table, columns, key_column=key_column)

    @pytest.mark.asyncio
    async def test_fetch_returns_row_as_dict(self, pool):
        store = PostgresStore(pool, "users", ("id", "name", "age"))

        assert await store.fetch(1) == {"id": 1, "name": "Ada", "age": 36}
        pool.fetchrow.assert_awaited_once_with(store.query, 1)

    @pytest.mark.asyncio
    async def test_fetch_builds_model(self, pool):
        store = PostgresStore(pool, "users", ("id", "name", "age"), model=User)

        assert await store.fetch(1) == User(id=1, name="Ada", age=36)

    @pytest.mark.asyncio
    async def test_missing_row(self, pool):
        pool.fetchrow.return_value = None
        store = PostgresStore(pool, "users", ("id", "name", "age"))

        with pytest.raises(NotFound):
            await store.fetch(404)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [asyncpg.InterfaceError("pool is closed"), ConnectionRefusedError("connection refused")],
    )
    async def test_driver_errors_become_store_errors(self, pool, error):
        pool.fetchrow.side_effect = error
        store = PostgresStore(pool, "users", ("id", "name", "age"))

        with pytest.raises(StoreError) as exc_info:
            await store.fetch(1)
        assert exc_info.value.__cause__ is error

    @pytest.mark.asyncio
    async def test_fetcher_binds_identity(self, pool):
        store = PostgresStore(pool, "users", ("id", "name", "age"))
        fetch_fn = store.fetcher(7)

        await fetch_fn()

        pool.fetchrow.assert_awaited_once_with(store.query, 7)
