"""
Tests for configuration, exceptions, path canonicalization and logging helpers
"""

import json
import logging
import os
from pathlib import Path

import pytest

from doclock.core.config import DEFAULT_CONFIG, LockConfig
from doclock.core.constants import DEFAULT_APP_ID, DEFAULT_STALE_THRESHOLD_SECONDS, MARKER_SUFFIX
from doclock.core.exceptions import (
    AlreadyLockedError,
    DocLockError,
    InvalidPathError,
    LockError,
    LockIOError,
    NotLockedError,
)
from doclock.core.logging import ContextLoggerAdapter, JSONFormatter, setup_logging, with_log_context
from doclock.core.paths import canonicalize, marker_path_for
from doclock.core.version import __version__
from doclock.locks.marker import HolderInfo


class TestLockConfig:
    """Test LockConfig defaults and validation"""

    def test_defaults(self):
        config = LockConfig()
        assert config.app_id == DEFAULT_APP_ID == f"doclock/{__version__}"
        assert config.stale_threshold_seconds == DEFAULT_STALE_THRESHOLD_SECONDS == 86400
        assert config.marker_suffix == MARKER_SUFFIX == ".lock"
        assert config.hostname is None
        assert DEFAULT_CONFIG == config

    def test_local_hostname_override(self):
        assert LockConfig(hostname="render-node-7").local_hostname == "render-node-7"

    def test_rejects_negative_threshold(self):
        with pytest.raises(ValueError):
            LockConfig(stale_threshold_seconds=-1)

    def test_rejects_empty_suffix(self):
        with pytest.raises(ValueError):
            LockConfig(marker_suffix="")

    def test_disabled_threshold_is_allowed(self):
        assert LockConfig(stale_threshold_seconds=None).stale_threshold_seconds is None

    def test_to_dict(self):
        assert LockConfig(app_id="x").to_dict() == {
            "app_id": "x",
            "stale_threshold_seconds": DEFAULT_STALE_THRESHOLD_SECONDS,
            "hostname": None,
            "marker_suffix": ".lock",
        }


class TestExceptions:
    """Test the lock error hierarchy"""

    def test_hierarchy(self):
        for cls in (InvalidPathError, AlreadyLockedError, LockIOError, NotLockedError):
            assert issubclass(cls, LockError)
            assert issubclass(cls, DocLockError)

    def test_already_locked_names_holder(self):
        error = AlreadyLockedError("/docs/a.qet", HolderInfo(1234, "workstation", "editor/2.1"))
        assert error.path == "/docs/a.qet"
        assert str(error) == "Document is already locked: '/docs/a.qet': held by PID 1234 on workstation (editor/2.1)"

    def test_already_locked_without_holder(self):
        assert str(AlreadyLockedError("/docs/a.qet")) == "Document is already locked: '/docs/a.qet'"

    def test_io_error_uses_original_error_as_details(self):
        original = PermissionError(13, "Permission denied")
        error = LockIOError("Cannot delete lock marker", path="/docs/a.qet.lock", original_error=original)
        assert error.original_error is original
        assert "Permission denied" in str(error)


class TestPaths:
    """Test canonicalization of document paths"""

    def test_canonical_path_is_absolute_and_resolved(self, tmp_path, monkeypatch):
        doc = tmp_path / "sub" / "doc.qet"
        doc.parent.mkdir()
        doc.write_text("x", encoding="utf-8")
        monkeypatch.chdir(tmp_path)

        canonical = canonicalize(os.path.join("sub", "..", "sub", "doc.qet"))

        assert os.path.isabs(canonical)
        assert canonical == os.path.normcase(str(doc.resolve()))

    def test_accepts_path_objects(self, tmp_path):
        doc = tmp_path / "doc.qet"
        doc.write_text("x", encoding="utf-8")
        assert canonicalize(doc) == canonicalize(str(doc))

    def test_missing_document_is_invalid(self, tmp_path):
        with pytest.raises(InvalidPathError) as exc_info:
            canonicalize(tmp_path / "missing.qet")
        assert exc_info.value.path.endswith("missing.qet")

    def test_empty_path_is_invalid(self):
        with pytest.raises(InvalidPathError):
            canonicalize("")

    def test_nul_byte_is_invalid(self):
        with pytest.raises(InvalidPathError):
            canonicalize("bad\0path")

    def test_marker_path_for(self):
        assert marker_path_for("/docs/a.qet") == "/docs/a.qet.lock"
        assert marker_path_for("/docs/a.qet", ".owner") == "/docs/a.qet.owner"


class TestLogging:
    """Test logging helpers"""

    def test_with_log_context_merges_fields(self):
        base = logging.getLogger("doclock.test.context")
        adapter = with_log_context(base, document="/docs/a.qet", skipped=None)
        assert isinstance(adapter, ContextLoggerAdapter)
        assert adapter.extra == {"document": "/docs/a.qet"}

        nested = with_log_context(adapter, attempt=2)
        assert nested.logger is base
        assert nested.extra == {"document": "/docs/a.qet", "attempt": 2}

    def test_per_call_extra_overrides_context(self, caplog):
        adapter = with_log_context(logging.getLogger("doclock.test.extra"), document="/docs/a.qet", attempt=1)
        with caplog.at_level(logging.INFO, logger="doclock.test.extra"):
            adapter.info("Retrying", extra={"attempt": 2})
        assert caplog.records[-1].document == "/docs/a.qet"
        assert caplog.records[-1].attempt == 2

    def test_json_formatter_includes_context(self):
        record = logging.makeLogRecord(
            {"name": "doclock.locks", "levelname": "INFO", "levelno": logging.INFO, "msg": "Locked %s", "args": ("a",)}
        )
        record.document = "/docs/a.qet"

        payload = json.loads(JSONFormatter().format(record))

        assert payload["message"] == "Locked a"
        assert payload["level"] == "INFO"
        assert payload["document"] == "/docs/a.qet"

    def test_json_formatter_survives_bad_placeholders(self):
        record = logging.makeLogRecord({"msg": "Locked %s %s", "args": ("only-one",)})
        payload = json.loads(JSONFormatter().format(record))
        assert payload["message"].endswith("[log-message-format-error]")

    def test_setup_logging_writes_json_file(self, tmp_path, restore_root_logging):
        log_file = tmp_path / "logs" / "doclock.log"

        logger = setup_logging(log_level="debug", log_format="json", log_file=log_file)
        logging.getLogger("doclock.locks.registry").debug("Locked %s", "/docs/a.qet")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert logger.name == "doclock"
        assert logging.getLogger().level == logging.DEBUG
        lines = [json.loads(line) for line in Path(log_file).read_text(encoding="utf-8").splitlines()]
        assert lines[-1]["message"] == "Locked /docs/a.qet"
        assert lines[-1]["logger"] == "doclock.locks.registry"

    def test_setup_logging_falls_back_on_invalid_level(self, restore_root_logging, capsys):
        setup_logging(log_level="LOUD")
        assert logging.getLogger().level == logging.INFO
        assert "Invalid log level" in capsys.readouterr().err
