"""Pytest configuration and fixtures for doclock tests"""

import logging
from pathlib import Path

import pytest

from doclock.core.config import LockConfig
from doclock.locks.registry import FileLockRegistry


@pytest.fixture
def document(tmp_path: Path) -> Path:
    """Create a document file to lock"""
    doc = tmp_path / "a.qet"
    doc.write_text("<project/>\n", encoding="utf-8")
    return doc


@pytest.fixture
def lock_config() -> LockConfig:
    return LockConfig(app_id="test-editor/1.0", stale_threshold_seconds=3600)


@pytest.fixture
def registry(lock_config: LockConfig):
    """Registry standing in for the first application instance"""
    reg = FileLockRegistry(config=lock_config)
    yield reg
    reg.release_all()


@pytest.fixture
def other_registry():
    """Registry standing in for a second, independent application instance"""
    reg = FileLockRegistry(config=LockConfig(app_id="other-editor/2.0", stale_threshold_seconds=3600))
    yield reg
    reg.release_all()


@pytest.fixture
def restore_root_logging():
    """Snapshot root logger handlers so setup_logging tests do not leak configuration"""
    root = logging.getLogger()
    saved_handlers = root.handlers[:]
    saved_level = root.level
    yield
    for handler in root.handlers[:]:
        if handler not in saved_handlers:
            handler.close()
        root.removeHandler(handler)
    for handler in saved_handlers:
        root.addHandler(handler)
    root.setLevel(saved_level)
