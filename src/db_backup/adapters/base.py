"""Entity store protocol definition.

Defines the ``EntityStore`` Protocol that every table accessor in the
registry must implement.  All methods are ``async def``.

Write methods take the caller's transaction handle (an
``AsyncConnection`` opened by ``AsyncSqlDatabase.transaction()``) so that
clearing and loading every table happens inside one unit of atomicity.

Usage:
    from db_backup.adapters.base import EntityStore

    async def reload(store: EntityStore, rows: list[dict], conn) -> None:
        await store.delete_all(conn)
        await store.bulk_insert(rows, conn)
"""

from collections.abc import AsyncIterator
from typing import Any, Protocol


class EntityStore(Protocol):
    """Row store for one table.

    This Protocol is the capability interface the exporter, importer and
    restore orchestrator depend on.  Concrete stores decide how values are
    read and how archived strings are coerced on insert.
    """

    @property
    def name(self) -> str:
        """Table name."""
        ...

    async def columns(self) -> list[str]:
        """Column names in the table's natural order."""
        ...

    def find_all(self) -> AsyncIterator[dict[str, Any]]:
        """Stream every row as a dict keyed by column name.

        Example:
            async for row in store.find_all():
                print(row["id"])
        """
        ...

    async def count(self, conn: Any = None) -> int:
        """Number of rows, optionally inside an open transaction."""
        ...

    async def bulk_insert(self, rows: list[dict[str, Any]], conn: Any) -> int:
        """Insert all ``rows`` inside the transaction ``conn``.

        Values arrive as strings (or ``None``) and are coerced to the
        column types by the store.

        Returns:
            Number of rows inserted.

        Raises:
            ValueError: If a row names an unknown column or a value cannot
                be coerced to its column type.
            Exception: Any database error (constraint violation, etc.).
        """
        ...

    async def delete_all(self, conn: Any) -> None:
        """Delete every row inside the transaction ``conn``."""
        ...
