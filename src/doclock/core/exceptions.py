"""Custom exceptions for doclock.

Every failure of the locking subsystem is reported through this hierarchy.
Each exception names the path involved so callers can surface a useful
message without re-deriving context.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from doclock.locks.marker import HolderInfo


class DocLockError(Exception):
    """Base exception for all doclock errors."""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class LockError(DocLockError):
    """Base exception for lock acquisition, release and inspection failures.

    Attributes:
        path: Document or marker path the operation was working on
    """

    def __init__(self, message: str, path: str | None = None, details: str | None = None):
        self.path = path
        super().__init__(message, details)


class InvalidPathError(LockError):
    """Raised when a document path cannot be canonicalized.

    Examples:
        - Path does not exist
        - Permission denied on a parent directory
        - Malformed path (embedded NUL byte, symlink loop)
    """

    pass


class AlreadyLockedError(LockError):
    """Raised when a live holder currently owns the marker.

    Attributes:
        holder: Holder recorded in the marker, if it could be read
    """

    def __init__(self, path: str, holder: HolderInfo | None = None):
        self.holder = holder
        details = None
        if holder is not None:
            details = f"held by PID {holder.pid} on {holder.hostname} ({holder.app_id})"
        super().__init__(f"Document is already locked: '{path}'", path=path, details=details)


class LockIOError(LockError):
    """Raised when a filesystem operation on a marker fails.

    Covers create, delete, read and write failures other than contention:
    disk full, permission denied on the marker itself, path too long.
    """

    def __init__(
        self,
        message: str,
        path: str | None = None,
        details: str | None = None,
        original_error: Exception | None = None,
    ):
        self.original_error = original_error
        if details is None and original_error is not None:
            details = str(original_error)
        super().__init__(message, path=path, details=details)


class CorruptMarkerError(LockError):
    """Raised when a marker exists but its content cannot be parsed."""

    pass


class NotLockedError(LockError):
    """Raised when no marker exists for a document that was expected to have one."""

    pass
