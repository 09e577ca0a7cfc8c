"""Configuration management: TOML/env loading and config models.

Usage:
    >>> from db_backup.config import load_backup_config, BackupConfig
"""

from db_backup.config.loader import load_backup_config
from db_backup.config.models import BackupConfig, LoggingConfig

__all__ = ["load_backup_config", "BackupConfig", "LoggingConfig"]
