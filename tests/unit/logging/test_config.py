"""Unit tests for logging configuration."""

from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest
import structlog

from airgap_deployer.logging.config import (
    REDACTED_VALUE,
    RETENTION_DAYS,
    _cleanup_old_logs,
    _setup_file_logging,
    configure_logging,
    get_logger,
    redact_sensitive,
)


@pytest.fixture(autouse=True)
def _reset_root_logger() -> Any:
    """Remove handlers added by configure_logging after each test."""
    root = logging.getLogger()
    original_handlers = list(root.handlers)
    yield
    root.handlers = original_handlers
    structlog.reset_defaults()


@pytest.mark.unit
class TestRedactSensitive:
    """Tests for redact_sensitive processor."""

    def test_masks_credential_keys(self) -> None:
        """Credential values bound on an event should be replaced."""
        event = {"event": "provisioning", "pull_password": "hunter2", "token": "abc"}

        result = redact_sensitive(None, "info", event)

        assert result["pull_password"] == REDACTED_VALUE
        assert result["token"] == REDACTED_VALUE
        assert result["event"] == "provisioning"

    def test_leaves_empty_values(self) -> None:
        """Empty credential values should be left as they are."""
        event = {"event": "provisioning", "password": ""}

        result = redact_sensitive(None, "info", event)

        assert result["password"] == ""

    def test_leaves_other_keys(self) -> None:
        """Keys that are not credentials should pass through."""
        event = {"event": "creating_secret", "name": "private-registry", "namespace": "podinfo"}

        result = redact_sensitive(None, "info", dict(event))

        assert result == event


@pytest.mark.unit
class TestCleanupOldLogs:
    """Tests for _cleanup_old_logs function."""

    def test_returns_early_when_log_dir_missing(self, tmp_path: Path) -> None:
        """_cleanup_old_logs should return early if LOG_DIR doesn't exist."""
        non_existent = tmp_path / "nonexistent"
        with patch("airgap_deployer.logging.config.LOG_DIR", non_existent):
            # Should not raise
            _cleanup_old_logs()

    def test_deletes_old_log_files(self, tmp_path: Path) -> None:
        """_cleanup_old_logs should delete log files older than RETENTION_DAYS."""
        log_file = tmp_path / "deploy.log.1"
        log_file.write_text("old log data")
        old_time = (datetime.now() - timedelta(days=RETENTION_DAYS + 5)).timestamp()
        os.utime(log_file, (old_time, old_time))

        with patch("airgap_deployer.logging.config.LOG_DIR", tmp_path):
            _cleanup_old_logs()

        assert not log_file.exists()

    def test_keeps_recent_log_files(self, tmp_path: Path) -> None:
        """_cleanup_old_logs should keep log files newer than RETENTION_DAYS."""
        log_file = tmp_path / "deploy.log"
        log_file.write_text("recent log data")

        with patch("airgap_deployer.logging.config.LOG_DIR", tmp_path):
            _cleanup_old_logs()

        assert log_file.exists()

    def test_ignores_unrelated_files(self, tmp_path: Path) -> None:
        """Only deploy logs should be swept."""
        other = tmp_path / "notes.txt"
        other.write_text("keep me")
        old_time = (datetime.now() - timedelta(days=RETENTION_DAYS + 5)).timestamp()
        os.utime(other, (old_time, old_time))

        with patch("airgap_deployer.logging.config.LOG_DIR", tmp_path):
            _cleanup_old_logs()

        assert other.exists()

    def test_ignores_os_errors(self, tmp_path: Path) -> None:
        """_cleanup_old_logs should handle OSError gracefully."""
        log_file = tmp_path / "deploy.log.1"
        log_file.write_text("data")
        old_time = (datetime.now() - timedelta(days=RETENTION_DAYS + 5)).timestamp()
        os.utime(log_file, (old_time, old_time))

        with (
            patch("airgap_deployer.logging.config.LOG_DIR", tmp_path),
            patch.object(Path, "unlink", side_effect=OSError("permission denied")),
        ):
            # Should not raise despite OSError
            _cleanup_old_logs()


@pytest.mark.unit
class TestSetupFileLogging:
    """Tests for _setup_file_logging function."""

    def test_creates_log_directory_and_handler(self, tmp_path: Path) -> None:
        """_setup_file_logging should create log dir and add a file handler."""
        log_dir = tmp_path / "logs"
        log_file = log_dir / "deploy.log"

        with (
            patch("airgap_deployer.logging.config.LOG_DIR", log_dir),
            patch("airgap_deployer.logging.config.LOG_FILE", log_file),
            patch("airgap_deployer.logging.config._cleanup_old_logs"),
        ):
            root = logging.getLogger()
            initial_count = len(root.handlers)
            _setup_file_logging()
            assert len(root.handlers) > initial_count
            assert log_dir.exists()
            for handler in root.handlers[initial_count:]:
                handler.close()
            root.handlers = root.handlers[:initial_count]


@pytest.mark.unit
class TestConfigureLogging:
    """Tests for configure_logging function."""

    def _console_handler(self, before: list[logging.Handler]) -> logging.Handler:
        added = [h for h in logging.getLogger().handlers if h not in before]
        assert len(added) == 1
        return added[0]

    def test_debug_sets_debug_level(self) -> None:
        """configure_logging with debug=True should use DEBUG level."""
        before = list(logging.getLogger().handlers)
        configure_logging(debug=True, log_to_file=False)

        assert self._console_handler(before).level == logging.DEBUG

    def test_verbose_sets_info_level(self) -> None:
        """configure_logging with verbose=True should use INFO level."""
        before = list(logging.getLogger().handlers)
        configure_logging(verbose=True, log_to_file=False)

        assert self._console_handler(before).level == logging.INFO

    def test_default_sets_warning_level(self) -> None:
        """configure_logging with no args should use WARNING level."""
        before = list(logging.getLogger().handlers)
        configure_logging(log_to_file=False)

        assert self._console_handler(before).level == logging.WARNING

    def test_json_output_uses_json_renderer(self) -> None:
        """configure_logging with json_output=True should use JSONRenderer."""
        before = list(logging.getLogger().handlers)
        configure_logging(json_output=True, log_to_file=False)

        formatter = self._console_handler(before).formatter
        assert isinstance(formatter, structlog.stdlib.ProcessorFormatter)
        assert isinstance(formatter.processors[-1], structlog.processors.JSONRenderer)

    def test_file_logging_enabled_by_default(self) -> None:
        """configure_logging should set up the file log unless disabled."""
        with patch("airgap_deployer.logging.config._setup_file_logging") as mock_setup:
            configure_logging()

        mock_setup.assert_called_once()

    def test_file_logging_can_be_disabled(self) -> None:
        """configure_logging(log_to_file=False) should skip the file log."""
        with patch("airgap_deployer.logging.config._setup_file_logging") as mock_setup:
            configure_logging(log_to_file=False)

        mock_setup.assert_not_called()


@pytest.mark.unit
class TestGetLogger:
    """Tests for get_logger function."""

    def test_returns_bound_logger(self) -> None:
        """get_logger should return a structlog logger."""
        logger = get_logger("test")
        assert logger is not None

    def test_binds_initial_context(self) -> None:
        """get_logger should bind initial context when provided."""
        logger = get_logger("test", release="podinfo", namespace="podinfo")
        assert logger is not None

    def test_returns_logger_without_context(self) -> None:
        """get_logger should work without initial context."""
        logger = get_logger("test")
        assert logger is not None
