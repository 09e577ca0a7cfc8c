"""Import CSV data files back into registry tables.

Rows are loaded inside the caller's transaction with one bulk insert per
table.  Empty fields become NULL.  Any failure aborts the whole table
(there is no row-level skip) and surfaces as ``RestoreFailed`` carrying
the table name.
"""

import csv
import logging
from pathlib import Path
from typing import Any

from db_backup.errors import InvalidBackupFile, RestoreFailed
from db_backup.registry import Entity

logger = logging.getLogger(__name__)


def parse_row(row: dict[str, str]) -> dict[str, str | None]:
    """Convert empty strings back to NULL; other values pass through."""
    return {key: (None if value == "" else value) for key, value in row.items()}


def _check_header(header: list[str], columns: list[str], table: str, csv_path: Path) -> None:
    """The header must name exactly the table's columns (any order)."""
    duplicates = sorted({h for h in header if header.count(h) > 1})
    missing = sorted(set(columns) - set(header))
    unexpected = sorted(set(header) - set(columns))
    if duplicates or missing or unexpected:
        logger.error(
            f"Header of {csv_path} does not match table {table}: "
            f"missing={missing} unexpected={unexpected} duplicates={duplicates}"
        )
        raise RestoreFailed(
            f"Columns in {csv_path.name} do not match table {table}",
            table=table,
            details={
                "missing": missing,
                "unexpected": unexpected,
                "duplicates": duplicates,
            },
        )


async def import_entity(csv_path: Path, entity: Entity, conn: Any) -> int:
    """Load one CSV file into ``entity`` inside the transaction ``conn``.

    Args:
        csv_path: Data file for the table.
        entity: Destination registry entity.
        conn: Open transaction handle passed through to the store.

    Returns:
        Number of rows imported.  A missing file or a header-only file
        yields ``0``.

    Raises:
        InvalidBackupFile: If the file cannot be read or parsed as CSV.
        RestoreFailed: On header mismatch, a malformed row, or any store
            error during the bulk insert.
    """
    table = entity.name
    if not csv_path.is_file():
        logger.warning(f"CSV file not found for table {table}: {csv_path}")
        return 0

    logger.info(f"Importing {csv_path} to table {table}")

    try:
        columns = await entity.store.columns()
    except Exception as e:
        logger.error(f"Table {table} is not available in the database: {e}")
        raise RestoreFailed(
            f"Table {table} does not exist in database",
            table=table,
            details=str(e),
        ) from e

    rows: list[dict[str, str | None]] = []
    try:
        with open(csv_path, newline="", encoding="utf-8-sig") as f:
            reader = csv.DictReader(f)
            header = reader.fieldnames
            if header is None:
                logger.warning(f"No data to import for table {table}")
                return 0
            _check_header(list(header), columns, table, csv_path)

            for raw in reader:
                # DictReader puts surplus fields under None and fills short rows with None
                if None in raw or any(v is None for v in raw.values()):
                    raise RestoreFailed(
                        f"Malformed row at line {reader.line_num} of {csv_path.name}",
                        table=table,
                    )
                rows.append(parse_row(raw))
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        logger.error(f"Failed to read CSV file {csv_path}: {e}")
        raise InvalidBackupFile(
            f"Failed to read CSV file for {table}", details=str(e)
        ) from e

    if not rows:
        logger.warning(f"No data to import for table {table}")
        return 0

    try:
        imported = await entity.store.bulk_insert(rows, conn)
    except Exception as e:
        logger.error(f"Failed to import CSV to {table}: {e}")
        raise RestoreFailed(
            f"Failed to import data to {table}",
            table=table,
            details=str(e),
        ) from e

    logger.info(f"Imported {imported} rows into {table}")
    return imported
