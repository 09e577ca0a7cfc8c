"""Backup service: the operations exposed to the surrounding application.

``BackupService`` creates, lists, downloads and deletes archives in the
backup root, and restores the database from an uploaded archive.  The
caller is expected to have authenticated an admin identity before
calling any of these methods; ``actor`` is only used for logging.

Restore runs as a small state machine::

    RECEIVED -> EXTRACTING -> LOCATING -> CLEARING -> LOADING -> COMMITTING -> DONE
                                   (any failure) -> ROLLED_BACK / FAILED

Clearing (reverse registry order) and loading (forward registry order)
happen inside one transaction, so a failed restore leaves every table
exactly as it was.  Temporary files are removed on every exit path
unless ``preserve_temp_files`` is set.

Concurrent restores against the same database are not coordinated here;
deployments must serialize them (single worker or an advisory lock).

Usage:
    from db_backup.config import load_backup_config
    from db_backup.service import BackupService

    service = BackupService.from_config(load_backup_config())
    created = await service.create_backup(actor="admin-1")
    result = await service.restore_from_upload(payload, "backup.zip")
    await service.close()
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, BinaryIO

from db_backup.adapters.sql import AsyncSqlDatabase
from db_backup.archiver import archive_directory, extract_archive, find_data_directory
from db_backup.config.models import BackupConfig
from db_backup.errors import (
    BackupError,
    BackupFailed,
    BackupNotFound,
    ConfigurationError,
    ErrorResponse,
    InvalidBackupFile,
    RestoreFailed,
    internal_error_response,
)
from db_backup.exporter import export_all
from db_backup.filesystem import (
    ensure_backup_root,
    ensure_uploads_dir,
    format_size,
    generate_timestamp,
    get_backup_root,
    make_temp_dir,
    remove_tree,
    reserve_archive_path,
)
from db_backup.importer import import_entity
from db_backup.models import (
    BackupDownload,
    BackupInfo,
    CreateBackupResult,
    DeleteBackupResult,
    RestoreResult,
)
from db_backup.registry import TableRegistry, build_registry
from db_backup.validation import (
    ARCHIVE_EXTENSION,
    sanitize_filename,
    validate_archive_filename,
)

logger = logging.getLogger(__name__)

_UPLOAD_CHUNK = 64 * 1024


class RestoreStage(str, Enum):
    """States of one restore session."""

    RECEIVED = "received"
    EXTRACTING = "extracting"
    LOCATING = "locating"
    CLEARING = "clearing"
    LOADING = "loading"
    COMMITTING = "committing"
    DONE = "done"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


@dataclass
class RestoreSession:
    """Ephemeral state of one restore invocation."""

    archive_path: Path
    remove_archive: bool = False
    temp_dir: Path | None = None
    data_dir: Path | None = None
    stage: RestoreStage = RestoreStage.RECEIVED
    rows_per_table: dict[str, int] = field(default_factory=dict)

    def advance(self, stage: RestoreStage) -> None:
        logger.debug(f"Restore {self.archive_path.name}: {self.stage.value} -> {stage.value}")
        self.stage = stage


class BackupService:
    """Backup and restore operations over one backup root and one database.

    Args:
        config: Backup configuration.
        registry: Ordered tables to export and restore.
        database: Provides ``transaction()`` for restore.  Only required
            for restore; list, download and delete work without it.
    """

    def __init__(
        self,
        config: BackupConfig,
        registry: TableRegistry,
        database: Any = None,
    ) -> None:
        self._config = config
        self._registry = registry
        self._database = database

    @classmethod
    def from_config(cls, config: BackupConfig) -> "BackupService":
        """Build the service, its database and registry from configuration."""
        database = None
        if config.database_url:
            database = AsyncSqlDatabase(config.database_url)
            registry = build_registry(config.registry, database)
        else:
            registry = TableRegistry([])
        return cls(config, registry, database)

    @property
    def config(self) -> BackupConfig:
        return self._config

    @property
    def registry(self) -> TableRegistry:
        return self._registry

    @property
    def backup_root(self) -> Path:
        return get_backup_root(self._config)

    async def close(self) -> None:
        """Dispose of the database engine, if any."""
        if self._database is not None:
            await self._database.close()

    def error_response(self, exc: BaseException) -> ErrorResponse:
        """Structured response for any exception.

        Details are included only in development.  Exceptions outside the
        backup taxonomy map to ``INTERNAL_ERROR``.
        """
        include = self._config.include_error_details
        if isinstance(exc, BackupError):
            return exc.to_response(include_details=include)
        return internal_error_response(exc, include_details=include)

    # ------------------------------------------------------------------
    # Create / List / Download / Delete
    # ------------------------------------------------------------------

    async def create_backup(self, actor: str | None = None) -> CreateBackupResult:
        """Export every table and package the files as one archive.

        On failure neither the staging directory nor a partial archive is
        left behind.

        Raises:
            BackupFailed: If any export, archive, or filesystem step fails.
            ConfigurationError: If there is neither a database nor any
                registered table to export.
        """
        if self._database is None and len(self._registry) == 0:
            raise ConfigurationError("A database is required to create backups")

        logger.info(f"User {actor} initiated database backup creation")

        staging_dir: Path | None = None
        archive_path: Path | None = None
        succeeded = False
        try:
            root = ensure_backup_root(self._config)
            timestamp = generate_timestamp()
            staging_dir = make_temp_dir(root, "staging_")

            summary = await export_all(
                self._registry, staging_dir, self._config.data_extension
            )

            archive_path = reserve_archive_path(root, self._config.archive_prefix, timestamp)
            archive_directory(staging_dir, archive_path)
            succeeded = True
        except BackupError:
            raise
        except Exception as e:
            logger.error(f"Failed to create backup: {e}")
            raise BackupFailed("Failed to create database backup", details=str(e)) from e
        finally:
            if staging_dir is not None:
                self._remove_quietly(staging_dir)
            if not succeeded and archive_path is not None:
                self._remove_quietly(archive_path)

        logger.info(
            f"Backup created: {archive_path.name} "
            f"({summary['tables_exported']} tables)"
        )
        return CreateBackupResult(
            filename=archive_path.name,
            path=str(archive_path),
            tables_exported=summary["tables_exported"],
            timestamp=timestamp,
            rows_per_table=summary["rows_per_table"],
        )

    def list_backups(self) -> list[BackupInfo]:
        """Archives in the backup root, newest first.

        A missing backup root yields an empty list.
        """
        root = self.backup_root
        if not root.is_dir():
            return []

        backups: list[BackupInfo] = []
        for path in root.iterdir():
            if path.is_symlink() or not path.is_file():
                continue
            if not path.name.endswith(ARCHIVE_EXTENSION):
                continue
            try:
                st = path.stat()
            except FileNotFoundError:
                # Deleted since the directory scan
                continue
            backups.append(
                BackupInfo(
                    filename=path.name,
                    size=st.st_size,
                    size_formatted=format_size(st.st_size),
                    created_at=datetime.fromtimestamp(st.st_mtime).isoformat(),
                )
            )

        # Timestamped names sort chronologically
        backups.sort(key=lambda b: b.filename, reverse=True)
        return backups

    def _resolve_backup(self, filename: str) -> Path:
        """Validate ``filename`` and return its path in the backup root.

        Raises:
            InvalidFilename: If the name is unsafe or not a ``.zip``.
            BackupNotFound: If no regular file has that name.
        """
        validate_archive_filename(filename)
        path = self.backup_root / filename
        if path.is_symlink() or not path.is_file():
            raise BackupNotFound(f"Backup file not found: {filename}")
        return path

    def open_backup(self, filename: str, actor: str | None = None) -> BackupDownload:
        """Prepare an archive for download.

        Raises:
            InvalidFilename: If the name is unsafe or not a ``.zip``.
            BackupNotFound: If the archive does not exist.
        """
        logger.info(f"User {actor} requested backup download: {filename}")
        path = self._resolve_backup(filename)
        return BackupDownload(
            filename=path.name,
            path=path,
            content_length=path.stat().st_size,
        )

    def delete_backup(self, filename: str, actor: str | None = None) -> DeleteBackupResult:
        """Delete one archive.

        Raises:
            InvalidFilename: If the name is unsafe or not a ``.zip``.
            BackupNotFound: If the archive does not exist.
            BackupFailed: If the file cannot be removed.
        """
        logger.info(f"User {actor} requested backup deletion: {filename}")
        path = self._resolve_backup(filename)
        try:
            path.unlink()
        except FileNotFoundError as e:
            raise BackupNotFound(f"Backup file not found: {filename}") from e
        except OSError as e:
            logger.error(f"Failed to delete backup {path}: {e}")
            raise BackupFailed("Failed to delete backup", details=str(e)) from e

        logger.info(f"Deleted backup: {filename}")
        return DeleteBackupResult(message="Backup deleted successfully", filename=filename)

    # ------------------------------------------------------------------
    # Upload + Restore
    # ------------------------------------------------------------------

    def save_upload(self, data: bytes | BinaryIO, filename: str) -> Path:
        """Persist uploaded archive bytes under ``<root>/uploads``.

        Args:
            data: Archive bytes, or a binary file object to stream from.
            filename: Client-supplied filename.

        Returns:
            Path of the stored upload.

        Raises:
            InvalidFilename: If ``filename`` is unsafe or not a ``.zip``.
            InvalidBackupFile: If the upload is empty or too large.
            BackupFailed: If the upload cannot be written.
        """
        validate_archive_filename(filename)

        try:
            uploads = ensure_uploads_dir(self._config)
        except OSError as e:
            raise BackupFailed("Failed to prepare upload directory", details=str(e)) from e

        unique = f"{generate_timestamp()}_{uuid.uuid4().hex[:8]}_{sanitize_filename(filename)}"
        target = uploads / unique
        limit = self._config.max_upload_bytes

        written = 0
        try:
            with open(target, "xb") as out:
                if isinstance(data, (bytes, bytearray, memoryview)):
                    written = len(data)
                    if written > limit:
                        raise InvalidBackupFile(
                            f"Uploaded file exceeds the {format_size(limit)} limit"
                        )
                    out.write(data)
                else:
                    while chunk := data.read(_UPLOAD_CHUNK):
                        written += len(chunk)
                        if written > limit:
                            raise InvalidBackupFile(
                                f"Uploaded file exceeds the {format_size(limit)} limit"
                            )
                        out.write(chunk)
            if written == 0:
                raise InvalidBackupFile("Uploaded file is empty")
        except BackupError:
            target.unlink(missing_ok=True)
            raise
        except OSError as e:
            target.unlink(missing_ok=True)
            logger.error(f"Failed to store upload {target}: {e}")
            raise BackupFailed("Failed to store uploaded file", details=str(e)) from e

        logger.info(f"Stored upload {filename} as {target} ({written} bytes)")
        return target

    async def restore_from_upload(
        self,
        data: bytes | BinaryIO,
        filename: str,
        actor: str | None = None,
    ) -> RestoreResult:
        """Store an uploaded archive and restore the database from it.

        The stored upload is removed when the restore ends.
        """
        if self._database is None:
            raise ConfigurationError("A database is required to restore backups")
        upload_path = self.save_upload(data, filename)
        return await self.restore_from_backup(upload_path, actor=actor, remove_archive=True)

    async def restore_from_backup(
        self,
        archive_path: Path | str,
        actor: str | None = None,
        remove_archive: bool = False,
    ) -> RestoreResult:
        """Replace the contents of every registry table with an archive's data.

        Args:
            archive_path: Zip archive to restore from.
            actor: Identity of the caller, for logging.
            remove_archive: Delete ``archive_path`` during cleanup (uploads).

        Returns:
            ``RestoreResult`` with per-table and total row counts.

        Raises:
            InvalidBackupFile: If the archive is invalid or has no data files.
            RestoreFailed: If clearing, loading or committing fails.  The
                transaction has been rolled back.
        """
        if self._database is None:
            raise ConfigurationError("A database is required to restore backups")

        session = RestoreSession(archive_path=Path(archive_path), remove_archive=remove_archive)
        logger.info(f"User {actor} initiated database restoration from {session.archive_path.name}")
        started = time.monotonic()

        try:
            self._check_received(session)
            if len(self._registry) == 0:
                raise RestoreFailed("No tables registered for restore")

            session.advance(RestoreStage.EXTRACTING)
            root = ensure_backup_root(self._config)
            session.temp_dir = make_temp_dir(root, "restore_")
            extract_archive(
                session.archive_path,
                session.temp_dir,
                max_members=self._config.max_archive_members,
                max_total_bytes=self._config.max_uncompressed_bytes,
            )

            session.advance(RestoreStage.LOCATING)
            session.data_dir = find_data_directory(
                session.temp_dir, self._registry.names(), self._config.data_extension
            )
            if session.data_dir is None:
                raise InvalidBackupFile("No data files found in backup archive")

            await self._replace_all(session)
            session.advance(RestoreStage.DONE)
        except BackupError as e:
            self._mark_failed(session, e)
            raise
        except Exception as e:
            self._mark_failed(session, e)
            raise RestoreFailed(
                "Failed to restore database", details=str(e)
            ) from e
        finally:
            self._cleanup(session)

        total = sum(session.rows_per_table.values())
        logger.info(
            f"Database restored successfully: {len(session.rows_per_table)} tables, "
            f"{total} total rows in {time.monotonic() - started:.2f}s"
        )
        return RestoreResult(
            tables_imported=len(session.rows_per_table),
            rows_per_table=dict(session.rows_per_table),
            total_rows=total,
        )

    def _check_received(self, session: RestoreSession) -> None:
        path = session.archive_path
        if not path.name.endswith(ARCHIVE_EXTENSION):
            raise InvalidBackupFile("Backup file must be a .zip archive")
        if not path.is_file():
            raise InvalidBackupFile(f"Backup file not found: {path.name}")
        if path.stat().st_size == 0:
            raise InvalidBackupFile("Backup file is empty")

    async def _replace_all(self, session: RestoreSession) -> None:
        """Clear then load every table inside one transaction."""
        data_dir = session.data_dir
        extension = self._config.data_extension
        known = {f"{name}.{extension}" for name in self._registry.names()}
        for path in sorted(data_dir.glob(f"*.{extension}")):
            if path.name not in known:
                logger.warning(f"Ignoring data file with no registered table: {path.name}")

        try:
            async with self._database.transaction() as conn:
                session.advance(RestoreStage.CLEARING)
                for entity in self._registry.delete_order():
                    try:
                        await entity.store.delete_all(conn)
                    except Exception as e:
                        logger.error(f"Failed to clear table {entity.name}: {e}")
                        raise RestoreFailed(
                            f"Failed to clear table {entity.name}",
                            table=entity.name,
                            details=str(e),
                        ) from e
                    logger.info(f"Cleared table {entity.name}")

                session.advance(RestoreStage.LOADING)
                for entity in self._registry.insert_order():
                    csv_path = data_dir / f"{entity.name}.{extension}"
                    if not csv_path.is_file():
                        logger.warning(f"CSV file not found for table {entity.name}: {csv_path}")
                        session.rows_per_table[entity.name] = 0
                        continue
                    session.rows_per_table[entity.name] = await import_entity(
                        csv_path, entity, conn
                    )

                session.advance(RestoreStage.COMMITTING)
        except BaseException:
            session.stage = RestoreStage.ROLLED_BACK
            logger.error("Restore transaction rolled back")
            raise

    def _mark_failed(self, session: RestoreSession, exc: BaseException) -> None:
        if session.stage != RestoreStage.ROLLED_BACK:
            session.stage = RestoreStage.FAILED
        logger.error(f"Failed to restore database ({session.stage.value}): {exc}")

    def _cleanup(self, session: RestoreSession) -> None:
        """Remove the extraction directory and, for uploads, the archive."""
        if self._config.preserve_temp_files:
            logger.info(
                f"Preserving temporary files for inspection: "
                f"temp_dir={session.temp_dir} archive={session.archive_path}"
            )
            return
        if session.temp_dir is not None:
            self._remove_quietly(session.temp_dir)
        if session.remove_archive:
            self._remove_quietly(session.archive_path)

    def _remove_quietly(self, path: Path) -> None:
        """Remove ``path``, logging failures instead of raising."""
        try:
            remove_tree(path)
        except OSError as e:
            logger.error(f"Failed to clean up {path}: {e}")
