"""
doclock - cross-process document locking with sidecar marker files

Prevents two program instances, on one machine or on several machines
sharing a filesystem, from editing the same document at the same time.
"""

from doclock.core.config import DEFAULT_CONFIG, LockConfig
from doclock.core.exceptions import (
    AlreadyLockedError,
    CorruptMarkerError,
    DocLockError,
    InvalidPathError,
    LockError,
    LockIOError,
    NotLockedError,
)
from doclock.core.version import __version__
from doclock.locks import FileLockRegistry, HolderInfo, LockMarker, process_registry

__all__ = [
    "DEFAULT_CONFIG",
    "AlreadyLockedError",
    "CorruptMarkerError",
    "DocLockError",
    "FileLockRegistry",
    "HolderInfo",
    "InvalidPathError",
    "LockConfig",
    "LockError",
    "LockIOError",
    "LockMarker",
    "NotLockedError",
    "__version__",
    "process_registry",
]
