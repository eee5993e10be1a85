"""Sidecar lock markers.

Design principles:
- Exclusivity comes from the filesystem's atomic create. A marker is
  staged in a private sibling file and hard-linked into place, so it is
  never overwritten and never observed half-written. Filesystems without
  hard links fall back to ``O_CREAT | O_EXCL`` followed by a write.
- A marker whose holder cannot be shown alive is stale: a dead PID on this
  host, an age past the configured threshold for other hosts, or content
  that cannot be parsed at all.
- Reading a marker never mutates it.
"""

from __future__ import annotations

import errno
import json
import logging
import os
import time
import uuid
from dataclasses import dataclass
from typing import Any

from doclock.core.config import DEFAULT_CONFIG, LockConfig
from doclock.core.constants import (
    MARKER_FIELD_APP_ID,
    MARKER_FIELD_HOSTNAME,
    MARKER_FIELD_PID,
    MARKER_FILE_MODE,
    MARKER_STAGING_SUFFIX,
)
from doclock.core.exceptions import AlreadyLockedError, CorruptMarkerError, LockIOError, NotLockedError
from doclock.core.paths import marker_path_for

logger = logging.getLogger(__name__)

_LINK_UNSUPPORTED_ERRNOS = {
    err_no
    for err_no in (
        errno.EPERM,
        getattr(errno, "ENOTSUP", None),
        getattr(errno, "EOPNOTSUPP", None),
        getattr(errno, "ENOSYS", None),
    )
    if err_no is not None
}

# Initial attempt plus the single retry after breaking a stale marker
_ACQUIRE_ATTEMPTS = 2

# Markers are tiny; anything larger is not ours and parses as corrupt
_MAX_MARKER_BYTES = 64 * 1024

_O_BINARY = getattr(os, "O_BINARY", 0)


def _coerce_pid(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            return int(text)
    return None


@dataclass(frozen=True)
class HolderInfo:
    """Identity of the process recorded in a marker."""

    pid: int
    hostname: str
    app_id: str

    def to_tuple(self) -> tuple[int, str, str]:
        return (self.pid, self.hostname, self.app_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            MARKER_FIELD_PID: self.pid,
            MARKER_FIELD_HOSTNAME: self.hostname,
            MARKER_FIELD_APP_ID: self.app_id,
        }

    def to_bytes(self) -> bytes:
        return (json.dumps(self.to_dict(), sort_keys=True) + "\n").encode("utf-8")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HolderInfo | None:
        """Build from a decoded marker object; unknown keys are ignored."""
        pid = _coerce_pid(data.get(MARKER_FIELD_PID))
        hostname = data.get(MARKER_FIELD_HOSTNAME)
        app_id = data.get(MARKER_FIELD_APP_ID)
        if pid is None or not isinstance(hostname, str) or not isinstance(app_id, str):
            return None
        return cls(pid=pid, hostname=hostname, app_id=app_id)

    @classmethod
    def from_bytes(cls, payload: bytes) -> HolderInfo | None:
        """Parse marker content, returning None when it is unusable.

        Accepts the JSON object written by this package and the older
        line-oriented layout ``pid\\napp_name\\nhostname\\n``.
        """
        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError:
            return None

        stripped = text.strip()
        if not stripped:
            return None

        if stripped.startswith("{"):
            try:
                data = json.loads(stripped)
            except json.JSONDecodeError:
                return None
            if not isinstance(data, dict):
                return None
            return cls.from_dict(data)

        lines = stripped.splitlines()
        if len(lines) < 3:
            return None
        pid = _coerce_pid(lines[0])
        if pid is None:
            return None
        return cls(pid=pid, hostname=lines[2].strip(), app_id=lines[1].strip())


@dataclass(frozen=True)
class _MarkerSnapshot:
    """Marker content and file identity read through a single open handle."""

    holder: HolderInfo | None
    identity: tuple[int, int]
    mtime_ns: int
    payload: bytes

    @property
    def mtime(self) -> float:
        return self.mtime_ns / 1_000_000_000

    def same_file(self, other: _MarkerSnapshot) -> bool:
        """Whether *other* was read from the same marker.

        Inode numbers are reused as soon as a file is deleted, so a marker
        published right after a stale one was removed can share its device
        and inode. Content and modification time tell them apart.
        """
        return (self.identity, self.mtime_ns, self.payload) == (other.identity, other.mtime_ns, other.payload)


def _identity(stat_result: os.stat_result) -> tuple[int, int]:
    return (stat_result.st_dev, stat_result.st_ino)


def _write_all(fd: int, payload: bytes) -> None:
    """Write complete payload to fd, handling short writes."""
    total_written = 0
    while total_written < len(payload):
        written = os.write(fd, payload[total_written:])
        if written <= 0:
            raise OSError("short write while persisting lock marker")
        total_written += written


def _safe_unlink(path: str) -> bool:
    try:
        os.unlink(path)
        return True
    except FileNotFoundError:
        return True
    except OSError:
        return False


def _create_file_exclusive(path: str, payload: bytes) -> os.stat_result:
    """Create *path* with O_EXCL and persist *payload*; raises FileExistsError on conflict."""
    fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY | _O_BINARY, MARKER_FILE_MODE)
    try:
        _write_all(fd, payload)
        os.fsync(fd)
        stat_result = os.fstat(fd)
    except OSError:
        os.close(fd)
        _safe_unlink(path)
        raise
    os.close(fd)
    return stat_result


def _publish_exclusive(marker_path: str, payload: bytes) -> os.stat_result | None:
    """Atomically create *marker_path* holding *payload*.

    Returns the stat of the new marker, or None when a marker is already
    present.
    """
    try:
        if hasattr(os, "link"):
            staging_path = f"{marker_path}.{uuid.uuid4().hex}{MARKER_STAGING_SUFFIX}"
            try:
                staged = _create_file_exclusive(staging_path, payload)
                try:
                    os.link(staging_path, marker_path)
                except FileExistsError:
                    return None
                except OSError as e:
                    if e.errno not in _LINK_UNSUPPORTED_ERRNOS:
                        raise
                    logger.debug("Hard links unsupported for %s; using exclusive create", marker_path)
                else:
                    return staged
            finally:
                _safe_unlink(staging_path)

        try:
            return _create_file_exclusive(marker_path, payload)
        except FileExistsError:
            return None
    except OSError as e:
        raise LockIOError("Cannot create lock marker", path=marker_path, original_error=e) from e


def _snapshot(marker_path: str) -> _MarkerSnapshot | None:
    """Read a marker without acquiring it; None when no marker exists."""
    try:
        with open(marker_path, "rb") as f:
            stat_result = os.fstat(f.fileno())
            payload = f.read(_MAX_MARKER_BYTES + 1)
    except FileNotFoundError:
        return None
    except OSError as e:
        raise LockIOError("Cannot read lock marker", path=marker_path, original_error=e) from e

    holder = None if len(payload) > _MAX_MARKER_BYTES else HolderInfo.from_bytes(payload)
    return _MarkerSnapshot(
        holder=holder,
        identity=_identity(stat_result),
        mtime_ns=stat_result.st_mtime_ns,
        payload=payload,
    )


def _is_windows_process_running(pid: int) -> bool:
    import ctypes

    kernel32 = ctypes.windll.kernel32
    handle = kernel32.OpenProcess(0x1000, False, pid)  # PROCESS_QUERY_LIMITED_INFORMATION
    if not handle:
        # ERROR_ACCESS_DENIED means the process exists but belongs to someone else.
        return kernel32.GetLastError() == 5
    try:
        exit_code = ctypes.c_ulong()
        if not kernel32.GetExitCodeProcess(handle, ctypes.byref(exit_code)):
            return True
        return exit_code.value == 259  # STILL_ACTIVE
    finally:
        kernel32.CloseHandle(handle)


def _is_process_running(pid: int) -> bool:
    if pid <= 0:
        return False
    if os.name == "nt":
        return _is_windows_process_running(pid)
    try:
        os.kill(pid, 0)  # Signal 0 doesn't kill, just checks
        return True
    except ProcessLookupError:
        return False
    except PermissionError:
        # EPERM means the process exists but we do not have permission to signal it.
        return True
    except OverflowError:
        return False
    except OSError as e:
        return e.errno == errno.EPERM


def _is_stale(snapshot: _MarkerSnapshot, config: LockConfig) -> bool:
    holder = snapshot.holder
    if holder is None:
        return True

    if holder.hostname.lower() == config.local_hostname.lower():
        return not _is_process_running(holder.pid)

    # A PID from another machine cannot be checked; fall back to marker age.
    if config.stale_threshold_seconds is None:
        return False
    return time.time() - snapshot.mtime > config.stale_threshold_seconds


def _break_stale(marker_path: str, snapshot: _MarkerSnapshot) -> None:
    """Remove the stale marker described by *snapshot*.

    The marker is first moved aside, which only one contender can do. If
    the moved file turns out to be a fresh marker published after the
    snapshot was taken, it is linked back into place.

    Raises:
        LockIOError: the marker could not be moved, or a live marker that was
            moved aside could not be put back
    """
    graveyard = f"{marker_path}.{uuid.uuid4().hex}.stale"
    try:
        os.replace(marker_path, graveyard)
    except FileNotFoundError:
        return
    except OSError as e:
        raise LockIOError("Cannot remove stale lock marker", path=marker_path, original_error=e) from e

    try:
        moved = _snapshot(graveyard)
    except LockIOError as e:
        logger.debug("Cannot inspect moved lock marker %s: %s", graveyard, e)
        _restore_marker(marker_path, graveyard)
        return

    if moved is None:
        return
    if not moved.same_file(snapshot):
        _restore_marker(marker_path, graveyard)
        return

    _safe_unlink(graveyard)
    holder = snapshot.holder
    if holder is None:
        logger.warning("Removed unreadable lock marker %s", marker_path)
    else:
        logger.warning(
            "Removed stale lock marker %s (pid=%s host=%s app=%s)",
            marker_path,
            holder.pid,
            holder.hostname,
            holder.app_id,
        )


def _restore_marker(marker_path: str, graveyard: str) -> None:
    """Link a marker moved aside by mistake back into place.

    If another contender published in the meantime, the moved marker is kept
    under its graveyard name and the caller must back off.
    """
    try:
        os.link(graveyard, marker_path)
    except FileExistsError as e:
        logger.error(
            "Lock marker %s was replaced while a live marker was set aside; the live marker is kept as %s",
            marker_path,
            graveyard,
        )
        raise LockIOError(
            "Live lock marker was displaced by a concurrent writer",
            path=marker_path,
            details=f"kept as {graveyard}",
            original_error=e,
        ) from e
    except OSError as e:
        logger.error("Could not restore live lock marker %s (kept as %s): %s", marker_path, graveyard, e)
        raise LockIOError("Cannot restore live lock marker", path=marker_path, original_error=e) from e
    _safe_unlink(graveyard)


class LockMarker:
    """Handle to a marker file created by this process.

    Instances are only produced by ``create_and_acquire`` and are consumed
    by ``release``.
    """

    def __init__(self, path: str, document_path: str, holder: HolderInfo, created: _MarkerSnapshot):
        self.path = path
        self.document_path = document_path
        self.holder = holder
        self._created = created
        self._released = False

    def __repr__(self) -> str:
        state = "released" if self._released else "held"
        return f"LockMarker(path={self.path!r}, pid={self.holder.pid}, {state})"

    @property
    def released(self) -> bool:
        return self._released

    @classmethod
    def create_and_acquire(cls, canonical_path: str, config: LockConfig | None = None) -> LockMarker:
        """Create the marker for *canonical_path*, breaking a stale one at most once.

        Raises:
            AlreadyLockedError: a live holder owns the marker
            LockIOError: the filesystem refused to create, read or remove a marker
        """
        config = config or DEFAULT_CONFIG
        marker_path = marker_path_for(canonical_path, config.marker_suffix)
        holder = HolderInfo(pid=os.getpid(), hostname=config.local_hostname, app_id=config.app_id)
        payload = holder.to_bytes()

        last_seen: HolderInfo | None = None
        for attempt in range(_ACQUIRE_ATTEMPTS):
            created = _publish_exclusive(marker_path, payload)
            if created is not None:
                logger.debug("Created lock marker %s", marker_path)
                return cls(
                    marker_path,
                    canonical_path,
                    holder,
                    _MarkerSnapshot(holder, _identity(created), created.st_mtime_ns, payload),
                )

            snapshot = _snapshot(marker_path)
            if snapshot is None:
                # Released between our create and read.
                continue

            last_seen = snapshot.holder
            if attempt == _ACQUIRE_ATTEMPTS - 1 or not _is_stale(snapshot, config):
                break
            _break_stale(marker_path, snapshot)

        raise AlreadyLockedError(canonical_path, last_seen)

    def release(self) -> None:
        """Delete the marker; a marker that is already gone counts as released.

        Raises:
            LockIOError: the marker exists but could not be inspected or removed
        """
        if self._released:
            return
        self._released = True

        current = _snapshot(self.path)
        if current is None:
            logger.debug("Lock marker %s already removed", self.path)
            return

        if not current.same_file(self._created):
            logger.warning("Lock marker %s now belongs to another holder; leaving it in place", self.path)
            return

        try:
            os.unlink(self.path)
        except FileNotFoundError:
            return
        except OSError as e:
            raise LockIOError("Cannot delete lock marker", path=self.path, original_error=e) from e
        logger.debug("Removed lock marker %s", self.path)

    @staticmethod
    def read_holder_info(canonical_path: str, config: LockConfig | None = None) -> HolderInfo:
        """Read the holder recorded for *canonical_path* without acquiring anything.

        Raises:
            NotLockedError: no marker exists
            CorruptMarkerError: the marker exists but cannot be parsed
            LockIOError: the marker cannot be read
        """
        config = config or DEFAULT_CONFIG
        marker_path = marker_path_for(canonical_path, config.marker_suffix)
        snapshot = _snapshot(marker_path)
        if snapshot is None:
            raise NotLockedError("Document is not locked", path=canonical_path)
        if snapshot.holder is None:
            raise CorruptMarkerError("Lock marker cannot be parsed", path=marker_path)
        return snapshot.holder
