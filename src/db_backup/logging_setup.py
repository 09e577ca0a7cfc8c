"""Logging configuration for command-line and service entry points.

The library itself only calls ``logging.getLogger(__name__)``; handlers
are installed here by whatever process hosts it.
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from db_backup.config.models import LoggingConfig

_FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def resolve_level(config: LoggingConfig, environment: str) -> int:
    """Explicit level wins; otherwise DEBUG in development, INFO elsewhere."""
    if config.level:
        level = logging.getLevelName(config.level.upper())
        if isinstance(level, int):
            return level
    return logging.DEBUG if environment == "development" else logging.INFO


def configure_logging(
    config: LoggingConfig,
    environment: str = "production",
    console: Console | None = None,
) -> logging.Logger:
    """Install console (rich) and optional rotating file handlers.

    Args:
        config: Logging settings.
        environment: ``development``, ``testing`` or ``production``.
        console: Rich console for output (stderr by default).

    Returns:
        The ``db_backup`` package logger.
    """
    logger = logging.getLogger("db_backup")
    logger.setLevel(resolve_level(config, environment))
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        log_time_format="[%Y-%m-%d %H:%M:%S]",
    )
    logger.addHandler(console_handler)

    if config.logs_path:
        logs_dir = Path(config.logs_path)
        logs_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            logs_dir / f"{config.app_name}.log",
            maxBytes=config.max_size_mb * 1024 * 1024,
            backupCount=config.max_files,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FORMAT))
        logger.addHandler(file_handler)

    return logger
