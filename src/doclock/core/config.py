"""Configuration dataclasses for doclock.

These dataclasses centralize the knobs of the locking subsystem for type
safety and easy testing. Hosting applications create one and hand it to
the registry they construct.
"""

from __future__ import annotations

import socket
from dataclasses import dataclass

from doclock.core.constants import DEFAULT_APP_ID, DEFAULT_STALE_THRESHOLD_SECONDS, MARKER_SUFFIX


@dataclass(frozen=True)
class LockConfig:
    """Configuration for marker creation and stale detection.

    Attributes:
        app_id: Identity written into every marker (default: "doclock/<version>")
        stale_threshold_seconds: Age after which a marker from another host is
            broken (default: 86400 = 24 hours). None disables age-based breaking.
        hostname: Hostname recorded in markers and compared against holders
            (default: None, meaning socket.gethostname())
        marker_suffix: Suffix appended to the document path (default: ".lock")
    """

    app_id: str = DEFAULT_APP_ID
    stale_threshold_seconds: float | None = DEFAULT_STALE_THRESHOLD_SECONDS
    hostname: str | None = None
    marker_suffix: str = MARKER_SUFFIX

    def __post_init__(self) -> None:
        if not self.marker_suffix:
            raise ValueError("marker_suffix must not be empty")
        if self.stale_threshold_seconds is not None and self.stale_threshold_seconds < 0:
            raise ValueError("stale_threshold_seconds must be >= 0 or None")

    @property
    def local_hostname(self) -> str:
        """Hostname of this machine as recorded in markers."""
        return self.hostname or socket.gethostname()

    def to_dict(self) -> dict[str, object]:
        return {
            "app_id": self.app_id,
            "stale_threshold_seconds": self.stale_threshold_seconds,
            "hostname": self.hostname,
            "marker_suffix": self.marker_suffix,
        }


# Default configuration instance (use this for consistent defaults)
DEFAULT_CONFIG = LockConfig()
