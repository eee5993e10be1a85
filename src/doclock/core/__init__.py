"""Core module - Foundation components with no internal dependencies.

This module provides the basic building blocks used throughout the package:
- Version information
- Custom exceptions
- Configuration dataclasses
- Constants and defaults
- Path canonicalization
- Logging helpers
"""

from doclock.core.version import __version__

from doclock.core.exceptions import (
    DocLockError,
    LockError,
    InvalidPathError,
    AlreadyLockedError,
    LockIOError,
    CorruptMarkerError,
    NotLockedError,
)

from doclock.core.config import (
    LockConfig,
    DEFAULT_CONFIG,
)

from doclock.core.constants import (
    MARKER_SUFFIX,
    DEFAULT_STALE_THRESHOLD_SECONDS,
    DEFAULT_APP_ID,
    LOG_FILE_MAX_BYTES,
    LOG_FILE_BACKUP_COUNT,
)

from doclock.core.paths import canonicalize, marker_path_for

from doclock.core.logging import (
    JSONFormatter,
    ContextLoggerAdapter,
    with_log_context,
    setup_logging,
)

__all__ = [
    "__version__",
    # Exceptions
    "DocLockError",
    "LockError",
    "InvalidPathError",
    "AlreadyLockedError",
    "LockIOError",
    "CorruptMarkerError",
    "NotLockedError",
    # Config
    "LockConfig",
    "DEFAULT_CONFIG",
    # Constants
    "MARKER_SUFFIX",
    "DEFAULT_STALE_THRESHOLD_SECONDS",
    "DEFAULT_APP_ID",
    "LOG_FILE_MAX_BYTES",
    "LOG_FILE_BACKUP_COUNT",
    # Paths
    "canonicalize",
    "marker_path_for",
    # Logging
    "JSONFormatter",
    "ContextLoggerAdapter",
    "with_log_context",
    "setup_logging",
]
