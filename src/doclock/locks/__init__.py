"""Locking subsystem for cross-process document coordination.

``LockMarker`` owns one sidecar marker file on disk; ``FileLockRegistry``
tracks the markers this process holds so application code can use a
stable yes/no API.
"""

from doclock.locks.marker import HolderInfo, LockMarker
from doclock.locks.registry import FileLockRegistry, process_registry

__all__ = [
    "FileLockRegistry",
    "HolderInfo",
    "LockMarker",
    "process_registry",
]
