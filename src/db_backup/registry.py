"""Table registry: the fixed, ordered list of exportable tables.

Registry order encodes foreign-key dependency: parents load first
(``insert_order``) and are deleted last (``delete_order``).  The order is
taken from the declared ``BackupSchema``; it is never derived from live
database metadata, so it must be kept in sync with schema changes.
"""

from dataclasses import dataclass

from db_backup.adapters.base import EntityStore
from db_backup.adapters.sql import AsyncSqlDatabase, SqlEntityStore
from db_backup.models import BackupSchema


@dataclass(frozen=True)
class Entity:
    """A registry entry: table name plus its row store accessor."""

    name: str
    store: EntityStore


class TableRegistry:
    """Ordered, immutable sequence of ``Entity`` objects."""

    def __init__(self, entities: list[Entity]) -> None:
        names = [e.name for e in entities]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate table names in registry: {names}")
        self._entities = tuple(entities)

    def __iter__(self):
        return iter(self._entities)

    def __len__(self) -> int:
        return len(self._entities)

    def names(self) -> list[str]:
        return [e.name for e in self._entities]

    def insert_order(self) -> list[Entity]:
        """Parents before children."""
        return list(self._entities)

    def delete_order(self) -> list[Entity]:
        """Children before parents."""
        return list(reversed(self._entities))

    def get(self, name: str) -> Entity | None:
        for entity in self._entities:
            if entity.name == name:
                return entity
        return None


def build_registry(schema: BackupSchema, database: AsyncSqlDatabase) -> TableRegistry:
    """Pair every declared table with a ``SqlEntityStore``, in schema order."""
    return TableRegistry(
        [Entity(name=t.name, store=SqlEntityStore(database, t.name)) for t in schema.tables]
    )
