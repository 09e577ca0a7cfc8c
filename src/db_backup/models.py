"""Pydantic models: table declarations and operation results.

Table declarations describe the registry: an ordered list of tables,
parents before children.  Result models are what ``BackupService``
returns to the surrounding application.

Usage:
    from db_backup.models import BackupSchema, TableDef, ForeignKey

    schema = BackupSchema(tables=[
        TableDef(name="users"),
        TableDef(name="orders",
                 parents=[ForeignKey(table="users", field="user_id")]),
    ])
"""

import re
from collections.abc import Iterator
from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator

_TABLE_NAME = re.compile(r"^[A-Za-z0-9_-]+$")


# ============================================================================
# Table Declarations
# ============================================================================


class ForeignKey(BaseModel):
    """Foreign key reference to a parent table."""

    table: str          # parent table name
    field: str          # FK column in this table


class TableDef(BaseModel):
    """Definition of a table eligible for backup and restore."""

    name: str                                                # table name, also the data file base-name
    parents: list[ForeignKey] = Field(default_factory=list)  # FKs to tables that must load first

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        if not _TABLE_NAME.match(value):
            raise ValueError(
                f"Table name '{value}' must match [A-Za-z0-9_-]+"
            )
        return value


class BackupSchema(BaseModel):
    """Declarative backup schema. Tables ordered by dependency (parents first)."""

    tables: list[TableDef] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_order(self) -> "BackupSchema":
        seen: set[str] = set()
        for table in self.tables:
            if table.name in seen:
                raise ValueError(f"Duplicate table name: {table.name}")
            for fk in table.parents:
                if fk.table == table.name:
                    continue
                if fk.table not in seen:
                    raise ValueError(
                        f"Table '{table.name}' references '{fk.table}', "
                        f"which must be declared before it"
                    )
            seen.add(table.name)
        return self

    def names(self) -> list[str]:
        """Table names in registry order."""
        return [t.name for t in self.tables]


# ============================================================================
# Operation Results
# ============================================================================


class CreateBackupResult(BaseModel):
    """Result of ``BackupService.create_backup()``."""

    filename: str
    path: str
    tables_exported: int
    timestamp: str
    rows_per_table: dict[str, int] = Field(default_factory=dict)


class BackupInfo(BaseModel):
    """One entry of ``BackupService.list_backups()``."""

    filename: str
    size: int
    size_formatted: str
    created_at: str


class DeleteBackupResult(BaseModel):
    """Result of ``BackupService.delete_backup()``."""

    message: str
    filename: str


class RestoreResult(BaseModel):
    """Result of a successful restore."""

    tables_imported: int
    rows_per_table: dict[str, int] = Field(default_factory=dict)
    total_rows: int = 0


class BackupDownload(BaseModel):
    """A validated archive ready to be streamed to the caller."""

    filename: str
    path: Path
    content_length: int
    content_type: str = "application/zip"

    @property
    def content_disposition(self) -> str:
        """``Content-Disposition`` header value (attachment)."""
        return f'attachment; filename="{self.filename}"'

    def headers(self) -> dict[str, str]:
        """Response headers for the download."""
        return {
            "Content-Type": self.content_type,
            "Content-Length": str(self.content_length),
            "Content-Disposition": self.content_disposition,
        }

    def iter_chunks(self, chunk_size: int = 64 * 1024) -> Iterator[bytes]:
        """Yield the archive bytes in chunks."""
        with open(self.path, "rb") as f:
            while True:
                chunk = f.read(chunk_size)
                if not chunk:
                    break
                yield chunk
