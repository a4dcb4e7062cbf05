"""Tests for kanbansync.logging (SyncLogging, level/format from config)."""

import logging

from kanbansync.config import LoggingConfig
from kanbansync.logging import (
    DEFAULT_FORMAT,
    DEFAULT_LEVEL,
    LEVELS,
    AnnotationFormatter,
    SyncLogging,
    _resolve_level,
)


class TestResolveLevel:
    """_resolve_level maps level names to logging constants."""

    def test_known_levels(self) -> None:
        for name, value in LEVELS.items():
            assert _resolve_level(name) == value

    def test_case_and_whitespace_normalized(self) -> None:
        assert _resolve_level(" debug ") == logging.DEBUG
        assert _resolve_level("\tWarning") == logging.WARNING

    def test_unknown_level_returns_info(self) -> None:
        """Unknown level name falls back to INFO."""
        assert _resolve_level("TRACE") == logging.INFO
        assert _resolve_level("") == logging.INFO
        assert DEFAULT_LEVEL == "INFO"


class TestSyncLogging:
    """SyncLogging applies LoggingConfig to the root logger."""

    def test_setup_sets_root_level(self) -> None:
        for level_name, expected in LEVELS.items():
            SyncLogging(LoggingConfig(level=level_name, format="%(message)s")).setup()
            assert logging.root.level == expected

    def test_setup_applies_format(self) -> None:
        custom = "%(levelname)s | %(name)s | %(message)s"
        SyncLogging(LoggingConfig(level="INFO", format=custom)).setup()
        assert logging.root.handlers[0].formatter._fmt == custom

    def test_empty_format_uses_default(self) -> None:
        SyncLogging(LoggingConfig(level="INFO", format="")).setup()
        assert logging.root.handlers[0].formatter._fmt == DEFAULT_FORMAT

    def test_annotations_add_second_handler(self) -> None:
        SyncLogging(LoggingConfig(level="INFO", format="%(message)s", annotations=True)).setup()
        assert len(logging.root.handlers) == 2
        assert isinstance(logging.root.handlers[1].formatter, AnnotationFormatter)
        assert logging.root.handlers[1].level == logging.WARNING
        SyncLogging(LoggingConfig(level="INFO", format="%(message)s")).setup()
        assert len(logging.root.handlers) == 1

    def test_urllib3_kept_at_warning_in_debug(self) -> None:
        """DEBUG runs do not echo urllib3 connection chatter."""
        SyncLogging(LoggingConfig(level="DEBUG", format="%(message)s")).setup()
        assert logging.getLogger("urllib3").level == logging.WARNING
        SyncLogging(LoggingConfig(level="ERROR", format="%(message)s")).setup()
        assert logging.getLogger("urllib3").level == logging.ERROR

    def test_get_logger_returns_named_logger(self) -> None:
        log = SyncLogging(LoggingConfig()).get_logger("kanbansync.test")
        assert log.name == "kanbansync.test"


class TestAnnotationFormatter:
    """Warnings and errors become workflow commands."""

    def _record(self, level: int, msg: str) -> logging.LogRecord:
        return logging.LogRecord("kanbansync.services.reconciler", level, __file__, 1, msg, None, None)

    def test_warning_command(self) -> None:
        line = AnnotationFormatter().format(self._record(logging.WARNING, "a.md: skipped"))
        assert line == "::warning title=kanbansync.services.reconciler::a.md: skipped"

    def test_error_command_escapes_newlines(self) -> None:
        line = AnnotationFormatter().format(self._record(logging.ERROR, "100% bad\nsecond"))
        assert line == "::error title=kanbansync.services.reconciler::100%25 bad%0Asecond"
