"""Tests for configure_logging()."""

import io
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest
from rich.console import Console
from rich.logging import RichHandler

from db_backup.config.models import LoggingConfig
from db_backup.logging_setup import configure_logging, resolve_level


@pytest.fixture(autouse=True)
def restore_logger():
    """Put the package logger back the way pytest expects it."""
    logger = logging.getLogger("db_backup")
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


def _console() -> Console:
    return Console(file=io.StringIO(), width=200)


class TestResolveLevel:
    def test_environment_defaults(self) -> None:
        assert resolve_level(LoggingConfig(), "development") == logging.DEBUG
        assert resolve_level(LoggingConfig(), "production") == logging.INFO

    def test_explicit_level_wins(self) -> None:
        assert resolve_level(LoggingConfig(level="warning"), "development") == logging.WARNING

    def test_unknown_level_falls_back(self) -> None:
        assert resolve_level(LoggingConfig(level="chatty"), "production") == logging.INFO


class TestConfigureLogging:
    def test_console_only(self) -> None:
        logger = configure_logging(LoggingConfig(), console=_console())
        assert logger.name == "db_backup"
        assert [type(h) for h in logger.handlers] == [RichHandler]

    def test_rotating_file(self, tmp_path: Path) -> None:
        config = LoggingConfig(app_name="mantrify-api", logs_path=str(tmp_path / "logs"), max_size_mb=2, max_files=4)
        logger = configure_logging(config, console=_console())

        file_handler = next(h for h in logger.handlers if isinstance(h, RotatingFileHandler))
        assert file_handler.maxBytes == 2 * 1024 * 1024
        assert file_handler.backupCount == 4

        logging.getLogger("db_backup.service").info("Backup created: b1.zip")
        file_handler.flush()
        text = (tmp_path / "logs" / "mantrify-api.log").read_text()
        assert "[INFO] db_backup.service: Backup created: b1.zip" in text

    def test_reconfigure_replaces_handlers(self, tmp_path: Path) -> None:
        config = LoggingConfig(logs_path=str(tmp_path))
        configure_logging(config, console=_console())
        logger = configure_logging(config, console=_console())
        assert len(logger.handlers) == 2

    def test_console_output(self) -> None:
        console = _console()
        configure_logging(LoggingConfig(), console=console)
        logging.getLogger("db_backup.archiver").warning("Ignoring data file: Extra.csv")
        assert "Ignoring data file: Extra.csv" in console.file.getvalue()
