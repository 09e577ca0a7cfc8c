"""Backup root directory lifecycle and filesystem helpers.

The backup root is ``<resources_path>/<backup_dir_name>``.  It holds one
flat directory of archives plus transient ``uploads/`` and ``restore_*``
/ ``staging_*`` subdirectories.
"""

import logging
import shutil
import tempfile
from datetime import datetime
from pathlib import Path

from db_backup.config.models import BackupConfig

logger = logging.getLogger(__name__)

UPLOADS_DIR_NAME = "uploads"


def get_backup_root(config: BackupConfig) -> Path:
    """Return the backup root path (does not create it)."""
    return Path(config.resources_path) / config.backup_dir_name


def ensure_backup_root(config: BackupConfig) -> Path:
    """Create the backup root if missing and return it.  Idempotent."""
    root = get_backup_root(config)
    if not root.exists():
        root.mkdir(parents=True, exist_ok=True)
        logger.info(f"Created backup directory: {root}")
    return root


def ensure_uploads_dir(config: BackupConfig) -> Path:
    """Create ``<root>/uploads`` if missing and return it."""
    uploads = ensure_backup_root(config) / UPLOADS_DIR_NAME
    uploads.mkdir(exist_ok=True)
    return uploads


def generate_timestamp(now: datetime | None = None) -> str:
    """Timestamp in ``YYYYMMDD_HHMMSS`` form (sorts chronologically)."""
    now = now or datetime.now()
    return now.strftime("%Y%m%d_%H%M%S")


def make_temp_dir(root: Path, prefix: str) -> Path:
    """Create a uniquely named directory under ``root``.

    Args:
        root: Parent directory (usually the backup root).
        prefix: Name prefix, e.g. ``"restore_"`` or ``"staging_"``.

    Returns:
        Path to the new, empty directory.
    """
    return Path(tempfile.mkdtemp(prefix=f"{prefix}{generate_timestamp()}_", dir=root))


def remove_tree(path: Path | str) -> None:
    """Recursively delete ``path``.  A missing path is a no-op."""
    path = Path(path)
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
        logger.info(f"Cleaned up directory: {path}")
    elif path.exists() or path.is_symlink():
        path.unlink()
        logger.info(f"Cleaned up file: {path}")


def reserve_archive_path(root: Path, prefix: str, timestamp: str) -> Path:
    """Atomically claim ``<prefix>_<timestamp>.zip`` in ``root``.

    The file is created empty with exclusive creation.  If another backup
    already claimed the name in the same second, a numeric suffix is
    appended (``<prefix>_<timestamp>_1.zip``, ...).

    Returns:
        Path of the claimed (empty) archive file.
    """
    stem = f"{prefix}_{timestamp}"
    candidate = root / f"{stem}.zip"
    suffix = 0
    while True:
        try:
            with open(candidate, "x"):
                pass
            return candidate
        except FileExistsError:
            suffix += 1
            candidate = root / f"{stem}_{suffix}.zip"


def format_size(size: int) -> str:
    """Format a byte count, e.g. ``"1.23 MB"``."""
    value = float(size)
    for unit in ["B", "KB", "MB", "GB"]:
        if value < 1024.0:
            return f"{value:.2f} {unit}"
        value /= 1024.0
    return f"{value:.2f} TB"
