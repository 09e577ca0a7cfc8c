"""Store adapters package.

Provides the ``EntityStore`` Protocol and the SQLAlchemy-backed
implementation (``AsyncSqlDatabase`` + ``SqlEntityStore``).

Usage:
    from db_backup.adapters import AsyncSqlDatabase, SqlEntityStore, EntityStore
"""

from db_backup.adapters.base import EntityStore
from db_backup.adapters.sql import (
    AsyncSqlDatabase,
    SqlEntityStore,
    create_async_engine_pooled,
    normalize_database_url,
)

__all__ = [
    "EntityStore",
    "AsyncSqlDatabase",
    "SqlEntityStore",
    "create_async_engine_pooled",
    "normalize_database_url",
]
