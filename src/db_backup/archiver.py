"""Zip archive creation and safe extraction.

``archive_directory`` packs the files directly under a staging directory
into one ZIP_DEFLATED archive.  ``extract_archive`` is the inverse and
refuses any archive whose entries would land outside the destination
(absolute paths, drive letters, ``..`` segments, symlinks) or whose
member count or uncompressed size exceeds the configured limits.  Every
entry is checked before the first byte is written.
"""

import logging
import ntpath
import stat
import zipfile
import zlib
from collections.abc import Iterable
from pathlib import Path, PurePosixPath

from db_backup.errors import BackupFailed, InvalidBackupFile

logger = logging.getLogger(__name__)

_COPY_CHUNK = 64 * 1024

# Directories added by archiving tools, never data
_IGNORED_DIRS = {"__MACOSX"}


def archive_directory(source_dir: Path, out_file: Path) -> int:
    """Zip every regular file directly under ``source_dir`` into ``out_file``.

    Returns:
        Number of files archived.

    Raises:
        BackupFailed: If reading or writing fails.  ``out_file`` is removed.
    """
    logger.info(f"Zipping {source_dir} to {out_file}")
    try:
        files = sorted(p for p in source_dir.iterdir() if p.is_file() and not p.is_symlink())
        with zipfile.ZipFile(out_file, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for path in files:
                zf.write(path, arcname=path.name)
    except (OSError, zipfile.LargeZipFile) as e:
        logger.error(f"Failed to create archive {out_file}: {e}")
        out_file.unlink(missing_ok=True)
        raise BackupFailed("Failed to create backup archive", details=str(e)) from e

    logger.info(f"Archived {len(files)} files into {out_file.name}")
    return len(files)


def _is_symlink(info: zipfile.ZipInfo) -> bool:
    return stat.S_ISLNK(info.external_attr >> 16)


def _member_target(dest_root: Path, name: str) -> Path:
    """Resolve an entry name under ``dest_root`` or raise."""
    normalized = name.replace("\\", "/")
    parts = PurePosixPath(normalized).parts
    if (
        not name
        or "\0" in name
        or normalized.startswith("/")
        or ntpath.splitdrive(name)[0]
        or ".." in parts
    ):
        raise InvalidBackupFile(
            "Backup archive contains an unsafe entry path",
            details=name,
        )

    target = (dest_root / normalized).resolve()
    if not target.is_relative_to(dest_root):
        raise InvalidBackupFile(
            "Backup archive contains an unsafe entry path",
            details=name,
        )
    return target


def extract_archive(
    in_file: Path,
    dest_dir: Path,
    max_members: int = 1000,
    max_total_bytes: int = 2 * 1024 * 1024 * 1024,
) -> list[Path]:
    """Extract ``in_file`` into ``dest_dir``.

    Args:
        in_file: Zip archive to expand.
        dest_dir: Existing destination directory.
        max_members: Maximum number of entries accepted.
        max_total_bytes: Maximum total uncompressed size, checked against
            both the declared sizes and the bytes actually written.

    Returns:
        Paths of the extracted files.

    Raises:
        InvalidBackupFile: If the archive is corrupt, exceeds the limits,
            or contains an entry that would escape ``dest_dir``.
    """
    logger.info(f"Extracting {in_file} to {dest_dir}")
    dest_root = dest_dir.resolve()

    try:
        zf = zipfile.ZipFile(in_file)
    except (zipfile.BadZipFile, OSError) as e:
        raise InvalidBackupFile("Uploaded file is not a valid zip archive", details=str(e)) from e

    extracted: list[Path] = []
    with zf:
        members = zf.infolist()
        if len(members) > max_members:
            raise InvalidBackupFile(
                f"Backup archive has too many entries ({len(members)} > {max_members})"
            )
        declared = sum(m.file_size for m in members)
        if declared > max_total_bytes:
            raise InvalidBackupFile(
                f"Backup archive is too large when extracted ({declared} bytes)"
            )

        plan: list[tuple[zipfile.ZipInfo, Path]] = []
        for member in members:
            if _is_symlink(member):
                raise InvalidBackupFile(
                    "Backup archive contains a symbolic link", details=member.filename
                )
            plan.append((member, _member_target(dest_root, member.filename)))

        written = 0
        try:
            for member, target in plan:
                if member.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                with zf.open(member) as src, open(target, "wb") as dst:
                    while chunk := src.read(_COPY_CHUNK):
                        written += len(chunk)
                        if written > max_total_bytes:
                            raise InvalidBackupFile(
                                "Backup archive is too large when extracted"
                            )
                        dst.write(chunk)
                extracted.append(target)
        except (zipfile.BadZipFile, zlib.error, EOFError, OSError) as e:
            raise InvalidBackupFile("Failed to extract backup archive", details=str(e)) from e

    logger.info(f"Extracted {len(extracted)} files from {in_file.name}")
    return extracted


def _data_files(directory: Path, table_names: Iterable[str], extension: str) -> list[Path]:
    """Files in ``directory`` named ``<table>.<extension>`` for a known table."""
    expected = {f"{name}.{extension}" for name in table_names}
    return sorted(
        p for p in directory.iterdir()
        if p.is_file() and not p.is_symlink() and p.name in expected
    )


def find_data_directory(
    extracted_dir: Path,
    table_names: Iterable[str],
    extension: str = "csv",
) -> Path | None:
    """Find the directory holding the data files.

    Looks at ``extracted_dir`` itself, then one level of subdirectories
    (archives made by other tools often wrap their content in a folder).
    The scan never goes deeper.  Only files named after one of
    ``table_names`` count; stray files with the right extension do not.

    Returns:
        The first directory containing a ``<table>.<extension>`` file, or
        ``None``.
    """
    table_names = list(table_names)
    if _data_files(extracted_dir, table_names, extension):
        return extracted_dir

    for child in sorted(extracted_dir.iterdir()):
        if not child.is_dir() or child.is_symlink() or child.name in _IGNORED_DIRS:
            continue
        if _data_files(child, table_names, extension):
            logger.info(f"Found data files in nested directory: {child.name}")
            return child

    return None
