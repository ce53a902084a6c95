"""
Logging configuration for the mpybuild CLI.

``setup_logging`` runs once from ``main.cli``; modules only ever call
``logging.getLogger(__name__)``.

Console output goes to stderr so ``--json`` output on stdout stays
machine-readable:

    INFO and up   bare message; warnings and errors get a
                  ``Warning:`` / ``Error:`` prefix for the CI transcript
    DEBUG         timestamp, level and logger:line

Level precedence: CLI flag > MPYBUILD_LOG_LEVEL > INFO. A run narrates
its phases at INFO, which is why INFO (not WARNING) is the default.

MPYBUILD_LOG_FILE adds a file handler with full detail at its own level
(MPYBUILD_LOG_FILE_LEVEL), handy for keeping toolchain install chatter
out of the job log while still archiving it.
"""

from __future__ import annotations

import logging
import sys

_TRANSCRIPT_FORMAT = "%(message)s"
_DETAIL_FORMAT = "%(asctime)s %(levelname)-7s %(name)s:%(lineno)d  %(message)s"
_CONSOLE_DATEFMT = "%H:%M:%S"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Libraries that log per request or per task at INFO/DEBUG.
_CHATTY_LOGGERS = ("asyncio", "urllib3", "filelock")


class TranscriptFormatter(logging.Formatter):
    """Bare messages, with warnings and errors labelled."""

    _LABELS = ((logging.ERROR, "Error: "), (logging.WARNING, "Warning: "))

    def __init__(self):
        super().__init__(_TRANSCRIPT_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        for threshold, label in self._LABELS:
            if record.levelno >= threshold:
                return label + text
        return text


def resolve_level(name: str | None, default: int = logging.INFO) -> int:
    """``"debug"`` → ``logging.DEBUG``; unknown or empty names give ``default``."""
    if not name:
        return default
    value = logging.getLevelName(name.strip().upper())
    return value if isinstance(value, int) else default


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if level <= logging.DEBUG:
        handler.setFormatter(logging.Formatter(_DETAIL_FORMAT, datefmt=_CONSOLE_DATEFMT))
    else:
        handler.setFormatter(TranscriptFormatter())
    return handler


def _file_handler(path: str, level: int) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_DETAIL_FORMAT, datefmt=_FILE_DATEFMT))
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Replace the root logger's handlers for this process.

    Args:
        level: Console level name.
        log_file: Optional log file path.
        log_file_level: Level for the file; defaults to ``level``.
        quiet_third_party: Hold chatty library loggers at WARNING
            unless the console is at DEBUG.
    """
    console_level = resolve_level(level)
    handlers = [_console_handler(console_level)]

    if log_file:
        file_level = resolve_level(log_file_level, default=console_level)
        handlers.append(_file_handler(log_file, file_level))

    root = logging.getLogger()
    root.handlers[:] = handlers
    # The root must let through whatever the most verbose handler wants.
    root.setLevel(min(h.level for h in handlers))

    if quiet_third_party and console_level > logging.DEBUG:
        for name in _CHATTY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False
