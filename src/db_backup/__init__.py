"""db-backup: CSV/zip backup and transactional restore for relational tables.

Exports every registered table to a CSV file, bundles the files into a
timestamped zip archive, and restores a database from such an archive
with all-or-nothing consistency across foreign-key relationships.

Usage:
    from db_backup import BackupService, load_backup_config
    from db_backup import BackupSchema, TableDef, ForeignKey
    from db_backup import BackupError, BackupNotFound, InvalidFilename
"""

__version__ = "0.1.0"

# Adapters
from db_backup.adapters.base import EntityStore
from db_backup.adapters.sql import AsyncSqlDatabase, SqlEntityStore

# Config
from db_backup.config.loader import load_backup_config
from db_backup.config.models import BackupConfig, LoggingConfig

# Errors
from db_backup.errors import (
    BackupError,
    BackupFailed,
    BackupNotFound,
    ConfigurationError,
    ErrorResponse,
    InvalidBackupFile,
    InvalidFilename,
    RestoreFailed,
)

# Models
from db_backup.models import (
    BackupDownload,
    BackupInfo,
    BackupSchema,
    CreateBackupResult,
    DeleteBackupResult,
    ForeignKey,
    RestoreResult,
    TableDef,
)

# Registry + service
from db_backup.registry import Entity, TableRegistry, build_registry
from db_backup.service import BackupService, RestoreSession, RestoreStage

__all__ = [
    # Adapters
    "EntityStore",
    "AsyncSqlDatabase",
    "SqlEntityStore",
    # Config
    "load_backup_config",
    "BackupConfig",
    "LoggingConfig",
    # Errors
    "BackupError",
    "BackupFailed",
    "BackupNotFound",
    "ConfigurationError",
    "ErrorResponse",
    "InvalidBackupFile",
    "InvalidFilename",
    "RestoreFailed",
    # Models
    "BackupDownload",
    "BackupInfo",
    "BackupSchema",
    "CreateBackupResult",
    "DeleteBackupResult",
    "ForeignKey",
    "RestoreResult",
    "TableDef",
    # Registry + service
    "Entity",
    "TableRegistry",
    "build_registry",
    "BackupService",
    "RestoreSession",
    "RestoreStage",
]
