"""Constants and default values for doclock.

This module centralizes marker layout details and default thresholds
used throughout the locking subsystem.
"""

from doclock.core.version import __version__

# ==================== MARKER LAYOUT ====================

# Sidecar suffix appended to the canonical document path
MARKER_SUFFIX: str = ".lock"

# Keys of the JSON object stored in a marker file
MARKER_FIELD_PID: str = "pid"
MARKER_FIELD_HOSTNAME: str = "hostname"
MARKER_FIELD_APP_ID: str = "app_id"

# Suffix for the private file a marker is staged in before publishing
MARKER_STAGING_SUFFIX: str = ".tmp"

# File mode for marker files
MARKER_FILE_MODE: int = 0o644

# ==================== STALENESS ====================

# Age after which a marker written on another host is considered abandoned.
# Holders on the local host are judged by PID liveness instead.
DEFAULT_STALE_THRESHOLD_SECONDS: int = 24 * 60 * 60

# ==================== IDENTITY ====================

DEFAULT_APP_ID: str = f"doclock/{__version__}"

# ==================== LOGGING DEFAULTS ====================

LOG_FILE_MAX_BYTES: int = 10 * 1024 * 1024  # 10MB max per log file
LOG_FILE_BACKUP_COUNT: int = 5  # Number of backup log files to keep
