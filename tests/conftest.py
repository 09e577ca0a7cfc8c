"""Shared fixtures: configuration, in-memory entity stores and a SQLite database."""

from datetime import datetime
from pathlib import Path

import pytest
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey as SAForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    select,
)

from db_backup.adapters.sql import AsyncSqlDatabase
from db_backup.config.models import BackupConfig
from db_backup.models import BackupSchema, ForeignKey, TableDef
from db_backup.registry import Entity, TableRegistry, build_registry
from db_backup.service import BackupService

USERS_ORDERS_SCHEMA = BackupSchema(
    tables=[
        TableDef(name="Users"),
        TableDef(name="Orders", parents=[ForeignKey(table="Users", field="userId")]),
    ]
)

SEED_USERS = [
    {"id": 1, "email": "ada@example.com", "nickname": "ada", "createdAt": datetime(2026, 1, 2, 3, 4, 5)},
    {"id": 2, "email": "bob@example.com", "nickname": None, "createdAt": None},
]

SEED_ORDERS = [
    {"id": 10, "userId": 1, "note": "first, with comma", "paid": True},
    {"id": 11, "userId": 1, "note": None, "paid": False},
    {"id": 12, "userId": 2, "note": 'says "hi"', "paid": True},
]


def build_metadata() -> MetaData:
    """Users/Orders with a real foreign key."""
    metadata = MetaData()
    Table(
        "Users",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("email", String(255), nullable=False),
        Column("nickname", String(255), nullable=True),
        Column("createdAt", DateTime, nullable=True),
    )
    Table(
        "Orders",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("userId", Integer, SAForeignKey("Users.id"), nullable=False),
        Column("note", String(255), nullable=True),
        Column("paid", Boolean, nullable=False),
    )
    return metadata


class MemoryStore:
    """``EntityStore`` kept in a list, for tests that need no database."""

    def __init__(self, name: str, columns: list[str], rows: list[dict] | None = None):
        self._name = name
        self._columns = list(columns)
        self.rows = [dict(r) for r in rows or []]
        self.inserted: list[dict] = []
        self.deleted = False

    @property
    def name(self) -> str:
        return self._name

    async def columns(self) -> list[str]:
        return list(self._columns)

    async def find_all(self):
        for row in self.rows:
            yield dict(row)

    async def count(self, conn=None) -> int:
        return len(self.rows)

    async def bulk_insert(self, rows, conn) -> int:
        self.inserted.extend(rows)
        return len(rows)

    async def delete_all(self, conn) -> None:
        self.deleted = True
        self.rows = []


@pytest.fixture
def make_entity():
    """Factory for ``Entity`` objects backed by a ``MemoryStore``."""

    def _make(name: str, columns: list[str], rows: list[dict] | None = None) -> Entity:
        return Entity(name=name, store=MemoryStore(name, columns, rows))

    return _make


@pytest.fixture
def memory_registry(make_entity) -> TableRegistry:
    """Two in-memory tables with a couple of rows each."""
    return TableRegistry(
        [
            make_entity("Users", ["id", "email"], [{"id": 1, "email": "a@example.com"}]),
            make_entity(
                "Orders",
                ["id", "userId"],
                [{"id": 10, "userId": 1}, {"id": 11, "userId": 1}],
            ),
        ]
    )


@pytest.fixture
def resources_path(tmp_path: Path) -> Path:
    path = tmp_path / "resources"
    path.mkdir()
    return path


@pytest.fixture
def backup_config(tmp_path: Path, resources_path: Path) -> BackupConfig:
    """Configuration pointing at a per-test resources dir and SQLite file."""
    return BackupConfig(
        resources_path=str(resources_path),
        database_url=f"sqlite:///{tmp_path / 'app.db'}",
        registry=USERS_ORDERS_SCHEMA,
    )


@pytest.fixture
async def database(backup_config: BackupConfig):
    """SQLite database with the Users/Orders tables created and empty."""
    db = AsyncSqlDatabase(backup_config.database_url)
    async with db.engine.begin() as conn:
        await conn.run_sync(build_metadata().create_all)
    yield db
    await db.close()


@pytest.fixture
async def seeded_database(database: AsyncSqlDatabase) -> AsyncSqlDatabase:
    """``database`` with two users and three orders."""
    users = await database.reflect_table("Users")
    orders = await database.reflect_table("Orders")
    async with database.transaction() as conn:
        await conn.execute(users.insert(), SEED_USERS)
        await conn.execute(orders.insert(), SEED_ORDERS)
    return database


@pytest.fixture
def sql_service(backup_config: BackupConfig, seeded_database: AsyncSqlDatabase) -> BackupService:
    """Service over the seeded SQLite database."""
    registry = build_registry(backup_config.registry, seeded_database)
    return BackupService(backup_config, registry, seeded_database)


@pytest.fixture
def fetch_rows():
    """Read every row of a table ordered by ``id``."""

    async def _fetch(database: AsyncSqlDatabase, name: str) -> list[dict]:
        table = await database.reflect_table(name)
        async with database.connect() as conn:
            result = await conn.execute(select(table).order_by(table.c.id))
            return [dict(row._mapping) for row in result]

    return _fetch
