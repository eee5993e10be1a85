"""Process-wide registry of held document locks.

The registry maps canonical document paths to the marker handles this
process owns. Cross-process exclusivity is provided by the markers; the
registry keeps repeated calls consistent within one process and makes
sure a path is never backed by two independent handles.
"""

from __future__ import annotations

import atexit
import logging
import os
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from doclock.core.config import DEFAULT_CONFIG, LockConfig
from doclock.core.exceptions import AlreadyLockedError, InvalidPathError, LockError
from doclock.core.logging import with_log_context
from doclock.core.paths import canonicalize
from doclock.locks.marker import HolderInfo, LockMarker

PathLike = str | os.PathLike[str]


class FileLockRegistry:
    """Acquire, release and inspect document locks for this process.

    ``try_lock``, ``unlock`` and ``is_locked_by_self`` never raise; every
    failure collapses into ``False`` or a no-op. Callers that need to know
    why a document could not be locked use ``lock_status`` (or the lenient
    ``lock_info``).

    Usage:
        registry = FileLockRegistry(config=LockConfig(app_id="editor/2.1"))
        if not registry.try_lock(path):
            holder = registry.lock_info(path)
            ...  # open read-only, tell the user who holds it
        ...
        registry.unlock(path)

    Args:
        config: Marker identity and stale detection settings
        logger: Logger to report through (default: module logger)
    """

    def __init__(self, *, config: LockConfig | None = None, logger: logging.Logger | None = None):
        self.config = config or DEFAULT_CONFIG
        self.logger = logger or logging.getLogger(__name__)
        self._locks: dict[str, LockMarker] = {}
        self._state_lock = threading.RLock()

    def __len__(self) -> int:
        with self._state_lock:
            return len(self._locks)

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, os.PathLike)):
            return False
        return self.is_locked_by_self(path)

    def _canonical_or_none(self, path: PathLike) -> str | None:
        try:
            return canonicalize(path)
        except InvalidPathError as e:
            self.logger.debug("Cannot canonicalize %s: %s", path, e)
            return None

    def try_lock(self, path: PathLike) -> bool:
        """Acquire the lock for *path*; True if this process now holds it."""
        canonical = self._canonical_or_none(path)
        if canonical is None:
            return False

        log = with_log_context(self.logger, document=canonical)
        with self._state_lock:
            if canonical in self._locks:
                return True

            try:
                marker = LockMarker.create_and_acquire(canonical, self.config)
            except AlreadyLockedError as e:
                log.info("Could not lock %s: %s", canonical, e)
                return False
            except LockError as e:
                log.warning("Could not lock %s: %s", canonical, e)
                return False

            self._locks[canonical] = marker
        log.debug("Locked %s", canonical)
        return True

    def unlock(self, path: PathLike) -> None:
        """Release the lock for *path* if this process holds it."""
        canonical = self._canonical_or_none(path)
        if canonical is None:
            return

        with self._state_lock:
            marker = self._locks.pop(canonical, None)
            if marker is None:
                return
            self._release_marker(canonical, marker)

    def is_locked_by_self(self, path: PathLike) -> bool:
        """Whether this registry holds the lock, not whether anyone does."""
        canonical = self._canonical_or_none(path)
        if canonical is None:
            return False
        with self._state_lock:
            return canonical in self._locks

    def lock_info(self, path: PathLike) -> HolderInfo | None:
        """Holder recorded for *path*, or None when unlocked or unreadable."""
        try:
            return self.lock_status(path)
        except LockError as e:
            self.logger.debug("No lock info for %s: %s", path, e)
            return None

    def lock_status(self, path: PathLike) -> HolderInfo:
        """Holder recorded for *path*, whoever it is.

        Raises:
            InvalidPathError: the document path cannot be canonicalized
            NotLockedError: no marker exists
            CorruptMarkerError: a marker exists but cannot be parsed
            LockIOError: the marker cannot be read
        """
        canonical = canonicalize(path)
        with self._state_lock:
            return LockMarker.read_holder_info(canonical, self.config)

    def held_paths(self) -> list[str]:
        """Canonical paths currently held by this registry."""
        with self._state_lock:
            return sorted(self._locks)

    def release_all(self) -> None:
        """Release every held lock (used at process exit)."""
        with self._state_lock:
            held = list(self._locks.items())
            self._locks.clear()
            for canonical, marker in held:
                self._release_marker(canonical, marker)

    @contextmanager
    def hold(self, path: PathLike) -> Iterator[bool]:
        """Try to lock *path* for the duration of a ``with`` block.

        Yields the ``try_lock`` result. On exit the lock is released only if
        this block acquired it; a lock already held before entering stays held.
        """
        with self._state_lock:
            already_held = self.is_locked_by_self(path)
            acquired = self.try_lock(path)
        try:
            yield acquired
        finally:
            if acquired and not already_held:
                self.unlock(path)

    def _release_marker(self, canonical: str, marker: LockMarker) -> None:
        try:
            marker.release()
        except LockError as e:
            self.logger.warning("Failed to remove lock marker for %s: %s", canonical, e)
            return
        self.logger.debug("Unlocked %s", canonical)


_process_registry: FileLockRegistry | None = None
_process_registry_guard = threading.Lock()


def process_registry(config: LockConfig | None = None) -> FileLockRegistry:
    """Return the single registry shared by this process.

    The first call creates it (with *config*, if given) and arranges for all
    of its locks to be released at interpreter exit. Later calls return the
    same instance and ignore *config*.
    """
    global _process_registry

    with _process_registry_guard:
        if _process_registry is None:
            _process_registry = FileLockRegistry(config=config)
            atexit.register(_process_registry.release_all)
        return _process_registry
