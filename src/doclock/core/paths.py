"""Path canonicalization for lock keys."""

from __future__ import annotations

import os
from pathlib import Path

from doclock.core.constants import MARKER_SUFFIX
from doclock.core.exceptions import InvalidPathError


def canonicalize(path: str | os.PathLike[str]) -> str:
    """Resolve *path* to the stable key used for locking.

    The result is absolute, symlink-resolved and case-normalized for the
    platform, so that every spelling of the same document maps to one key.
    The document must exist.

    Raises:
        InvalidPathError: if the path is empty, malformed or cannot be resolved
    """
    raw = os.fspath(path) if not isinstance(path, str) else path
    if not raw:
        raise InvalidPathError("Cannot canonicalize an empty path", path=raw)

    try:
        resolved = Path(raw).expanduser().resolve(strict=True)
    except FileNotFoundError as e:
        raise InvalidPathError("Document does not exist", path=raw, details=str(e)) from e
    except (OSError, RuntimeError, ValueError) as e:
        # RuntimeError: symlink loop on older interpreters; ValueError: embedded NUL byte
        raise InvalidPathError("Cannot canonicalize document path", path=raw, details=str(e)) from e

    return os.path.normcase(str(resolved))


def marker_path_for(canonical_path: str, suffix: str = MARKER_SUFFIX) -> str:
    """Return the sidecar marker path for an already canonical document path."""
    return canonical_path + suffix
