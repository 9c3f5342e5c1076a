"""Log files for segment evaluation runs.

Each segment writes to its own rotating file, audience-builder-<segment>.log.
ERROR records from segment loggers and from the library modules are also
written to audience-builder-error.log, tagged with the segment they came from:

    from audience_builder.logging import get_segment_logger, setup_logging

    setup_logging(settings)
    logger = get_segment_logger("VIP customers")
    logger.info("Matched 42 of 1000 contacts")
    logger.error("Contacts file unreadable")  # segment log and error log
"""

import logging
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path

from audience_builder.config import Settings

PACKAGE_LOGGER = "audience_builder"
SEGMENT_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
ERROR_FORMAT = "%(asctime)s [%(levelname)s] [%(segment)s] %(message)s"


@dataclass(frozen=True)
class LogFiles:
    """Where log files go and how they rotate."""

    directory: Path
    level: int = logging.INFO
    max_bytes: int = 5 * 1024 * 1024
    backup_count: int = 3

    @classmethod
    def from_settings(cls, settings: Settings) -> "LogFiles":
        return cls(
            directory=settings.log_dir,
            level=getattr(logging, settings.log_level.upper(), logging.INFO),
            max_bytes=settings.log_rotation_size_mb * 1024 * 1024,
            backup_count=settings.log_backup_count,
        )

    def path_for(self, name: str) -> Path:
        return self.directory / f"audience-builder-{name}.log"

    def open(self, name: str, level: int, fmt: str) -> RotatingFileHandler:
        handler = RotatingFileHandler(
            self.path_for(name),
            maxBytes=self.max_bytes,
            backupCount=self.backup_count,
            encoding="utf-8",
        )
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(fmt))
        return handler


class SegmentTag(logging.Filter):
    """Stamp records with the segment they belong to.

    Without a segment name, records keep an existing tag or fall back to
    the logger name.
    """

    def __init__(self, segment: str | None = None) -> None:
        super().__init__()
        self.segment = segment

    def filter(self, record: logging.LogRecord) -> bool:
        if self.segment is not None:
            record.segment = self.segment
        elif not hasattr(record, "segment"):
            record.segment = record.name
        return True


# Handlers and filters this module attached, so reset only removes its own
_files: LogFiles | None = None
_error_handler: RotatingFileHandler | None = None
_segment_loggers: dict[str, logging.Logger] = {}
_handlers: list[tuple[logging.Logger, logging.Handler]] = []
_filters: list[tuple[logging.Logger, logging.Filter]] = []


def _safe_name(name: str) -> str:
    return "".join(c if c.isalnum() else "-" for c in name)


def _attach(logger: logging.Logger, handler: logging.Handler) -> None:
    logger.addHandler(handler)
    _handlers.append((logger, handler))


def setup_logging(settings: Settings | None = None) -> LogFiles:
    """
    Open the shared error log and set the package log level.

    Calling it again replaces the previous configuration.

    Args:
        settings: Source of log_dir, log_level and rotation limits;
            read from the environment when omitted.

    Returns:
        The active log file configuration.
    """
    global _files, _error_handler

    reset_logging()
    files = LogFiles.from_settings(settings or Settings())
    files.directory.mkdir(parents=True, exist_ok=True)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(files.level)

    _error_handler = files.open("error", logging.ERROR, ERROR_FORMAT)
    _error_handler.addFilter(SegmentTag())
    _attach(package_logger, _error_handler)

    _files = files
    return files


def get_segment_logger(segment: str) -> logging.Logger:
    """
    Logger writing to the segment's own file and, for errors, the error log.

    Sets up logging from the environment on first use.
    """
    if segment in _segment_loggers:
        return _segment_loggers[segment]

    files = _files or setup_logging()
    safe_name = _safe_name(segment)

    logger = logging.getLogger(f"{PACKAGE_LOGGER}.segment.{safe_name}")
    logger.setLevel(files.level)
    logger.propagate = False

    tag = SegmentTag(segment)
    logger.addFilter(tag)
    _filters.append((logger, tag))

    _attach(logger, files.open(safe_name, logging.NOTSET, SEGMENT_FORMAT))
    _attach(logger, _error_handler)

    _segment_loggers[segment] = logger
    return logger


def reset_logging() -> None:
    """Detach and close everything setup_logging and get_segment_logger added."""
    global _files, _error_handler

    for logger, handler in _handlers:
        logger.removeHandler(handler)
        handler.close()
    for logger, tag in _filters:
        logger.removeFilter(tag)

    _handlers.clear()
    _filters.clear()
    _segment_loggers.clear()
    _files = None
    _error_handler = None
