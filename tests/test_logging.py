"""Tests for per-segment log files."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from audience_builder.config import Settings
from audience_builder.logging import (
    LogFiles,
    get_segment_logger,
    reset_logging,
    setup_logging,
)


@pytest.fixture
def log_dir(tmp_path: Path, clean_logging) -> Path:
    """Logging set up in a temporary directory."""
    path = tmp_path / "logs"
    setup_logging(Settings(log_dir=path))
    return path


class TestLogFiles:
    """Tests for log file configuration."""

    def test_from_settings(self, tmp_path: Path) -> None:
        """Test that rotation and level come from settings."""
        settings = Settings(
            log_dir=tmp_path, log_level="debug", log_rotation_size_mb=2, log_backup_count=7
        )
        files = LogFiles.from_settings(settings)
        assert files.level == logging.DEBUG
        assert files.max_bytes == 2 * 1024 * 1024
        assert files.backup_count == 7
        assert files.path_for("error") == tmp_path / "audience-builder-error.log"

    def test_setup_creates_directory(self, log_dir: Path) -> None:
        """Test that the log directory is created."""
        assert log_dir.is_dir()


class TestSegmentLoggers:
    """Tests for segment and error log files."""

    def test_segment_log_file(self, log_dir: Path) -> None:
        """Test that segment names become safe file names."""
        logger = get_segment_logger("VIP customers")
        logger.info("Matched 2 of 5 contacts")

        content = (log_dir / "audience-builder-VIP-customers.log").read_text()
        assert "[INFO] Matched 2 of 5 contacts" in content
        assert logger.name == "audience_builder.segment.VIP-customers"

    def test_logger_is_cached(self, log_dir: Path) -> None:
        """Test that repeated lookups share one logger."""
        assert get_segment_logger("Leads") is get_segment_logger("Leads")

    def test_errors_reach_error_log(self, log_dir: Path) -> None:
        """Test that segment errors are copied to the shared error log."""
        logger = get_segment_logger("Leads")
        logger.info("only in segment log")
        logger.error("Contacts file unreadable")

        errors = (log_dir / "audience-builder-error.log").read_text()
        assert "[ERROR] [Leads] Contacts file unreadable" in errors
        assert "only in segment log" not in errors

    def test_library_errors_reach_error_log(self, log_dir: Path) -> None:
        """Test that package modules share the error log."""
        logging.getLogger("audience_builder.config").error("Bad catalogue")

        errors = (log_dir / "audience-builder-error.log").read_text()
        assert "[audience_builder.config] Bad catalogue" in errors

    def test_files_written_despite_other_handlers(self, log_dir: Path) -> None:
        """Test that handlers added by other code do not suppress the log files."""
        name = "audience_builder.segment.Churned"
        foreign = logging.NullHandler()
        logging.getLogger(name).addHandler(foreign)
        try:
            logger = get_segment_logger("Churned")
            logger.error("Contacts file unreadable")
        finally:
            logging.getLogger(name).removeHandler(foreign)

        assert "Contacts file unreadable" in (
            log_dir / "audience-builder-Churned.log"
        ).read_text()
        assert "[Churned] Contacts file unreadable" in (
            log_dir / "audience-builder-error.log"
        ).read_text()

    def test_reset_keeps_foreign_handlers(self, log_dir: Path) -> None:
        """Test that reset only detaches the module's own handlers."""
        foreign = logging.NullHandler()
        logger = get_segment_logger("Leads")
        logger.addHandler(foreign)
        try:
            reset_logging()
            assert foreign in logger.handlers
            assert not any(isinstance(h, RotatingFileHandler) for h in logger.handlers)
            assert logger.filters == []
        finally:
            logger.removeHandler(foreign)

    def test_lazy_setup(
        self, tmp_path: Path, clean_logging, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that the first segment logger sets up logging from the environment."""
        monkeypatch.setenv("AUDIENCE_BUILDER_LOG_DIR", str(tmp_path / "env-logs"))
        get_segment_logger("Leads").info("hello")
        assert (tmp_path / "env-logs" / "audience-builder-Leads.log").exists()
