"""Tests for the SQLAlchemy-backed database and entity store."""

from datetime import datetime

import pytest
from sqlalchemy.exc import NoSuchTableError

from db_backup.adapters.base import EntityStore
from db_backup.adapters.sql import (
    AsyncSqlDatabase,
    SqlEntityStore,
    create_async_engine_pooled,
    normalize_database_url,
)


class TestUrlNormalization:
    @pytest.mark.parametrize(
        "url, expected",
        [
            ("postgres://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
            ("postgresql://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
            ("postgresql+asyncpg://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
            ("sqlite:///tmp/app.db", "sqlite+aiosqlite:///tmp/app.db"),
            ("sqlite+aiosqlite:///tmp/app.db", "sqlite+aiosqlite:///tmp/app.db"),
        ],
    )
    def test_normalize(self, url: str, expected: str) -> None:
        assert normalize_database_url(url) == expected


class TestEngineFactory:
    async def test_postgres_pool_defaults(self) -> None:
        engine = create_async_engine_pooled("postgresql+asyncpg://u:p@localhost/db")
        try:
            assert engine.pool.size() == 5
            assert engine.dialect.name == "postgresql"
        finally:
            await engine.dispose()

    async def test_caller_kwargs_override(self) -> None:
        engine = create_async_engine_pooled(
            "postgresql+asyncpg://u:p@localhost/db", pool_size=2
        )
        try:
            assert engine.pool.size() == 2
        finally:
            await engine.dispose()

    async def test_database_connection(self, database: AsyncSqlDatabase) -> None:
        assert await database.test_connection() is True


class TestSqlEntityStore:
    async def test_satisfies_protocol(self, database: AsyncSqlDatabase) -> None:
        store: EntityStore = SqlEntityStore(database, "Users")
        assert store.name == "Users"

    async def test_columns_in_table_order(self, database: AsyncSqlDatabase) -> None:
        store = SqlEntityStore(database, "Users")
        assert await store.columns() == ["id", "email", "nickname", "createdAt"]

    async def test_find_all_serializes(self, seeded_database: AsyncSqlDatabase) -> None:
        store = SqlEntityStore(seeded_database, "Users")
        rows = [row async for row in store.find_all()]
        rows.sort(key=lambda r: r["id"])
        assert rows == [
            {"id": 1, "email": "ada@example.com", "nickname": "ada", "createdAt": "2026-01-02T03:04:05"},
            {"id": 2, "email": "bob@example.com", "nickname": None, "createdAt": None},
        ]

    async def test_count(self, seeded_database: AsyncSqlDatabase) -> None:
        store = SqlEntityStore(seeded_database, "Orders")
        assert await store.count() == 3
        async with seeded_database.connect() as conn:
            assert await store.count(conn) == 3

    async def test_bulk_insert_coerces_strings(self, seeded_database: AsyncSqlDatabase, fetch_rows) -> None:
        users = SqlEntityStore(seeded_database, "Users")
        async with seeded_database.transaction() as conn:
            inserted = await users.bulk_insert(
                [{"id": "3", "email": "cy@example.com", "nickname": None, "createdAt": "2026-02-03T04:05:06"}],
                conn,
            )
        assert inserted == 1

        rows = await fetch_rows(seeded_database, "Users")
        assert rows[-1]["id"] == 3
        assert rows[-1]["createdAt"] == datetime(2026, 2, 3, 4, 5, 6)

    async def test_bulk_insert_boolean_strings(self, seeded_database: AsyncSqlDatabase, fetch_rows) -> None:
        orders = SqlEntityStore(seeded_database, "Orders")
        async with seeded_database.transaction() as conn:
            await orders.bulk_insert(
                [
                    {"id": "20", "userId": "1", "note": None, "paid": "false"},
                    {"id": "21", "userId": "2", "note": "", "paid": "true"},
                ],
                conn,
            )
        rows = {r["id"]: r for r in await fetch_rows(seeded_database, "Orders")}
        assert rows[20]["paid"] is False
        assert rows[21]["paid"] is True

    async def test_bulk_insert_rejects_bad_value(self, seeded_database: AsyncSqlDatabase) -> None:
        orders = SqlEntityStore(seeded_database, "Orders")
        async with seeded_database.connect() as conn:
            with pytest.raises(ValueError, match="Invalid value for Orders.userId"):
                await orders.bulk_insert(
                    [{"id": "30", "userId": "not-a-number", "note": None, "paid": "true"}],
                    conn,
                )

    async def test_bulk_insert_rejects_unknown_column(self, seeded_database: AsyncSqlDatabase) -> None:
        users = SqlEntityStore(seeded_database, "Users")
        async with seeded_database.connect() as conn:
            with pytest.raises(ValueError, match="Unknown column 'legacy'"):
                await users.bulk_insert([{"id": "9", "legacy": "x"}], conn)

    async def test_bulk_insert_empty(self, database: AsyncSqlDatabase) -> None:
        users = SqlEntityStore(database, "Users")
        assert await users.bulk_insert([], conn=None) == 0

    async def test_delete_all(self, seeded_database: AsyncSqlDatabase) -> None:
        orders = SqlEntityStore(seeded_database, "Orders")
        async with seeded_database.transaction() as conn:
            await orders.delete_all(conn)
        assert await orders.count() == 0

    async def test_missing_table(self, database: AsyncSqlDatabase) -> None:
        store = SqlEntityStore(database, "Nope")
        with pytest.raises(NoSuchTableError):
            await store.columns()
