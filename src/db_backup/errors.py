"""Error taxonomy for backup and restore operations.

Every failure that crosses the public API of ``db_backup`` is one of the
``BackupError`` subclasses below.  Each carries a stable ``code``, a
human-readable message, an HTTP-style status code, and optional
diagnostic ``details`` that callers may hide outside development.

Usage:
    from db_backup.errors import BackupNotFound, BackupError

    try:
        service.delete_backup(name)
    except BackupError as e:
        payload = e.to_response(include_details=False).model_dump()
"""

from typing import Any

from pydantic import BaseModel


class ErrorCodes:
    """Stable error kind strings."""

    INVALID_FILENAME = "INVALID_FILENAME"
    BACKUP_NOT_FOUND = "BACKUP_NOT_FOUND"
    BACKUP_FAILED = "BACKUP_FAILED"
    INVALID_BACKUP_FILE = "INVALID_BACKUP_FILE"
    RESTORE_FAILED = "RESTORE_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorBody(BaseModel):
    """Body of a structured error response."""

    code: str
    message: str
    status: int
    details: Any = None


class ErrorResponse(BaseModel):
    """Structured error response (``{"error": {...}}``)."""

    error: ErrorBody


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid.

    This is a startup failure, not part of the response taxonomy.
    """

    pass


class BackupError(Exception):
    """Base class for all backup/restore failures.

    Args:
        message: Human-readable message, safe to show to the caller.
        details: Optional diagnostic detail (underlying error text, etc.).
    """

    code: str = ErrorCodes.INTERNAL_ERROR
    status_code: int = 500

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_response(self, include_details: bool = False) -> ErrorResponse:
        """Build the structured response for this error.

        Args:
            include_details: Whether to include ``details`` (development only).

        Returns:
            ``ErrorResponse`` with a stable code, message and status.
        """
        return ErrorResponse(
            error=ErrorBody(
                code=self.code,
                message=self.message,
                status=self.status_code,
                details=self.details if include_details else None,
            )
        )


class InvalidFilename(BackupError):
    """Malformed or malicious filename input."""

    code = ErrorCodes.INVALID_FILENAME
    status_code = 400


class BackupNotFound(BackupError):
    """Referenced archive does not exist or is not a regular file."""

    code = ErrorCodes.BACKUP_NOT_FOUND
    status_code = 404


class BackupFailed(BackupError):
    """Export, archive, or filesystem step failed during create/delete."""

    code = ErrorCodes.BACKUP_FAILED
    status_code = 500


class InvalidBackupFile(BackupError):
    """Uploaded archive is not valid or holds no recognizable data files."""

    code = ErrorCodes.INVALID_BACKUP_FILE
    status_code = 400


class RestoreFailed(BackupError):
    """Any failure during clear/load/commit of a restore.

    Args:
        message: Human-readable message.
        table: Name of the table being processed when the failure occurred.
        details: Optional diagnostic detail.
    """

    code = ErrorCodes.RESTORE_FAILED
    status_code = 500

    def __init__(
        self,
        message: str,
        table: str | None = None,
        details: Any = None,
    ) -> None:
        super().__init__(message, details=details)
        self.table = table


def internal_error_response(
    exc: BaseException, include_details: bool = False
) -> ErrorResponse:
    """Map an unexpected (non-taxonomy) exception to ``INTERNAL_ERROR``."""
    return ErrorResponse(
        error=ErrorBody(
            code=ErrorCodes.INTERNAL_ERROR,
            message="An unexpected error occurred",
            status=500,
            details=str(exc) if include_details else None,
        )
    )
