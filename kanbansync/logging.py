"""Logging from config and env.

Levels (inclusive):
- ERROR: the run failed or a posted comment could not be recorded
- WARNING: per-file problems (skipped sub-steps, failed remote writes) and ERROR
- INFO: per-file created/updated/skipped lines, run summary, WARNING, and ERROR
- DEBUG: dedup decisions, skipped values and all levels above

Configure via kanbansync.yaml (logging.level, logging.format,
logging.annotations) or env (LOGGING_LEVEL, LOGGING_FORMAT). Inside GitHub
Actions (GITHUB_ACTIONS=true) warnings and errors are also written as
workflow commands so they show up as run annotations.
"""

import logging
import sys

from kanbansync.config import LoggingConfig

# Supported levels only (DEBUG, INFO, WARNING, ERROR)
LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}

DEFAULT_LEVEL = "INFO"
DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# HTTP client loggers that would repeat every request at DEBUG.
QUIET_LOGGERS = ("urllib3", "requests")


def _resolve_level(level: str) -> int:
    """Map level name to logging constant.

    Falls back to INFO if unknown.
    """
    return LEVELS.get(level.upper().strip(), logging.INFO)


def _escape_command_data(text: str) -> str:
    return text.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


class AnnotationFormatter(logging.Formatter):
    """Formats a record as a ::warning:: / ::error:: workflow command."""

    def format(self, record: logging.LogRecord) -> str:
        command = "error" if record.levelno >= logging.ERROR else "warning"
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return f"::{command} title={record.name}::{_escape_command_data(message)}"


class SyncLogging:
    """Configures root logger from LoggingConfig (YAML + env LOGGING_*)."""

    def __init__(self, config: LoggingConfig) -> None:
        self._level = _resolve_level(config.level)
        self._format = config.format or DEFAULT_FORMAT
        self._annotations = config.annotations

    def annotation_handler(self) -> logging.Handler:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(logging.WARNING)
        handler.setFormatter(AnnotationFormatter())
        return handler

    def setup(self) -> None:
        """Apply level and format to the root logger.

        The plain handler comes first; the annotation handler, when enabled,
        is added after it.
        """
        logging.basicConfig(
            level=self._level,
            format=self._format,
            force=True,
        )
        if self._annotations:
            logging.root.addHandler(self.annotation_handler())
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(max(self._level, logging.WARNING))

    def get_logger(self, name: str) -> logging.Logger:
        """Return a logger with the given name (uses root config)."""
        return logging.getLogger(name)
