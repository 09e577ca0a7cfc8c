"""Tests for table declarations, the registry, results and the error taxonomy."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from db_backup.errors import (
    BackupFailed,
    BackupNotFound,
    ErrorCodes,
    InvalidBackupFile,
    InvalidFilename,
    RestoreFailed,
    internal_error_response,
)
from db_backup.models import BackupDownload, BackupSchema, ForeignKey, TableDef
from db_backup.registry import TableRegistry


class TestBackupSchema:
    """Declared order must put parents before children."""

    def test_valid_schema(self) -> None:
        schema = BackupSchema(
            tables=[
                TableDef(name="Users"),
                TableDef(name="Mantras"),
                TableDef(
                    name="ContractUsersMantras",
                    parents=[
                        ForeignKey(table="Users", field="userId"),
                        ForeignKey(table="Mantras", field="mantraId"),
                    ],
                ),
            ]
        )
        assert schema.names() == ["Users", "Mantras", "ContractUsersMantras"]

    def test_self_reference_allowed(self) -> None:
        schema = BackupSchema(
            tables=[TableDef(name="Nodes", parents=[ForeignKey(table="Nodes", field="parentId")])]
        )
        assert schema.names() == ["Nodes"]

    def test_parent_declared_later(self) -> None:
        with pytest.raises(ValidationError, match="must be declared before"):
            BackupSchema(
                tables=[
                    TableDef(name="Orders", parents=[ForeignKey(table="Users", field="userId")]),
                    TableDef(name="Users"),
                ]
            )

    def test_duplicate_table(self) -> None:
        with pytest.raises(ValidationError, match="Duplicate table name"):
            BackupSchema(tables=[TableDef(name="Users"), TableDef(name="Users")])

    @pytest.mark.parametrize("name", ["../Users", "Users;DROP", "a b", ""])
    def test_table_name_must_be_file_safe(self, name: str) -> None:
        with pytest.raises(ValidationError):
            TableDef(name=name)


class TestTableRegistry:
    def test_orders(self, make_entity) -> None:
        registry = TableRegistry(
            [make_entity("A", ["id"]), make_entity("B", ["id"]), make_entity("C", ["id"])]
        )
        assert len(registry) == 3
        assert [e.name for e in registry.insert_order()] == ["A", "B", "C"]
        assert [e.name for e in registry.delete_order()] == ["C", "B", "A"]
        assert registry.names() == ["A", "B", "C"]

    def test_get(self, make_entity) -> None:
        registry = TableRegistry([make_entity("A", ["id"])])
        assert registry.get("A").name == "A"
        assert registry.get("Z") is None

    def test_duplicates_rejected(self, make_entity) -> None:
        with pytest.raises(ValueError, match="Duplicate"):
            TableRegistry([make_entity("A", ["id"]), make_entity("A", ["id"])])


class TestBackupDownload:
    def test_headers_and_chunks(self, tmp_path: Path) -> None:
        path = tmp_path / "database_backup_20260101_120000.zip"
        payload = b"PK" + bytes(range(256)) * 3
        path.write_bytes(payload)

        download = BackupDownload(filename=path.name, path=path, content_length=len(payload))

        assert download.headers() == {
            "Content-Type": "application/zip",
            "Content-Length": str(len(payload)),
            "Content-Disposition": 'attachment; filename="database_backup_20260101_120000.zip"',
        }
        chunks = list(download.iter_chunks(chunk_size=100))
        assert all(len(c) <= 100 for c in chunks)
        assert b"".join(chunks) == payload


class TestErrorTaxonomy:
    """Every error carries a stable code and status."""

    @pytest.mark.parametrize(
        "error_cls, code, status",
        [
            (InvalidFilename, ErrorCodes.INVALID_FILENAME, 400),
            (BackupNotFound, ErrorCodes.BACKUP_NOT_FOUND, 404),
            (BackupFailed, ErrorCodes.BACKUP_FAILED, 500),
            (InvalidBackupFile, ErrorCodes.INVALID_BACKUP_FILE, 400),
            (RestoreFailed, ErrorCodes.RESTORE_FAILED, 500),
        ],
    )
    def test_codes(self, error_cls, code: str, status: int) -> None:
        error = error_cls("boom")
        assert error.code == code
        assert error.status_code == status
        assert str(error) == "boom"

    def test_details_hidden_by_default(self) -> None:
        body = BackupFailed("Failed", details="disk full").to_response().model_dump()
        assert body == {
            "error": {"code": "BACKUP_FAILED", "message": "Failed", "status": 500, "details": None}
        }

    def test_details_included_on_request(self) -> None:
        response = BackupFailed("Failed", details="disk full").to_response(include_details=True)
        assert response.error.details == "disk full"

    def test_restore_failed_table(self) -> None:
        error = RestoreFailed("Failed to import data to Orders", table="Orders")
        assert error.table == "Orders"

    def test_internal_error(self) -> None:
        response = internal_error_response(KeyError("secret"), include_details=False)
        assert response.error.code == "INTERNAL_ERROR"
        assert response.error.message == "An unexpected error occurred"
        assert response.error.details is None
