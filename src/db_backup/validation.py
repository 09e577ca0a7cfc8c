"""Filename and path validation for user-supplied backup names.

``validate_filename`` must run before any filesystem call touches a
user-supplied string.  ``sanitize_filename`` is a normalizer for names
that have already been validated (or that come from a trusted source);
it never replaces validation.

Usage:
    from db_backup.validation import validate_archive_filename

    validate_archive_filename("database_backup_20260101_120000.zip")
"""

import ntpath
import posixpath
import re

from db_backup.errors import InvalidFilename

ARCHIVE_EXTENSION = ".zip"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def validate_filename(filename: str) -> None:
    """Reject empty, traversal, absolute, and null-byte filenames.

    Args:
        filename: Filename supplied by the caller.

    Raises:
        InvalidFilename: If the name is unsafe to join onto a trusted root.
    """
    if not isinstance(filename, str) or not filename.strip():
        raise InvalidFilename("Filename cannot be empty")

    if "\0" in filename:
        raise InvalidFilename("Invalid filename: null byte detected")

    if (
        ".." in filename
        or "/" in filename
        or "\\" in filename
        or posixpath.isabs(filename)
        or ntpath.isabs(filename)
        or ntpath.splitdrive(filename)[0]
    ):
        raise InvalidFilename("Invalid filename: path traversal detected")


def validate_zip_extension(filename: str) -> None:
    """Require the archive extension.

    Raises:
        InvalidFilename: If ``filename`` does not end with ``.zip``.
    """
    if not filename.endswith(ARCHIVE_EXTENSION):
        raise InvalidFilename(
            f"Filename must have {ARCHIVE_EXTENSION} extension"
        )


def validate_archive_filename(filename: str) -> None:
    """Full validation for archive names (safety checks, then extension)."""
    validate_filename(filename)
    validate_zip_extension(filename)


def sanitize_filename(filename: str) -> str:
    """Reduce a name to its base component with only ``[A-Za-z0-9._-]``.

    Every other character becomes ``_``.  A result made only of dots is
    replaced so the value can never name a parent or current directory.

    Args:
        filename: Name to normalize.

    Returns:
        A name that is safe to join onto a trusted directory root.
    """
    base = ntpath.basename(posixpath.basename(filename.replace("\0", "")))
    safe = _UNSAFE_CHARS.sub("_", base)
    if not safe or set(safe) == {"."}:
        safe = "_" * max(len(safe), 1)
    return safe
