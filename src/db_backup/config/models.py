"""Pydantic models for backup configuration."""

from typing import Literal

from pydantic import BaseModel, Field

from db_backup.models import BackupSchema


class LoggingConfig(BaseModel):
    """Logging settings used by ``configure_logging()``."""

    app_name: str = "db-backup"
    logs_path: str | None = None        # directory for the rotating log file
    level: str | None = None            # overrides the environment default
    max_size_mb: int = 5
    max_files: int = 5


class BackupConfig(BaseModel):
    """Complete backup subsystem configuration.

    ``resources_path`` is required; the backup root lives at
    ``<resources_path>/<backup_dir_name>``.
    """

    resources_path: str
    backup_dir_name: str = "database_backups"
    archive_prefix: str = "database_backup"
    data_extension: str = "csv"
    database_url: str | None = None
    environment: Literal["development", "testing", "production"] = "production"
    preserve_temp_files: bool = False
    max_upload_bytes: int = 512 * 1024 * 1024
    max_archive_members: int = 1000
    max_uncompressed_bytes: int = 2 * 1024 * 1024 * 1024
    registry: BackupSchema = Field(default_factory=BackupSchema)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def include_error_details(self) -> bool:
        """Diagnostic details are only exposed in development."""
        return self.environment == "development"
