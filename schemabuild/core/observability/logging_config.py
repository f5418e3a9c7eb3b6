"""
Logging configuration — console and file handlers for the CLI.

main.py calls ``setup_logging`` once. Pipeline modules log through
``logging.getLogger(__name__)``; the process adapter echoes compiler
stdout/stderr through the separate ``schemabuild.compiler`` logger.

Compiler lines are diagnostics the user has to read as the compiler
wrote them (``a.proto:3:1: Expected ";".``), so the console prints them
bare at every verbosity, and they can be given their own threshold:

    SCHEMABUILD_COMPILER_LOG_LEVEL=INFO schemabuild generate

shows compiler stdout while pipeline chatter stays at WARNING.

Console level precedence:
    CLI flag  >  SCHEMABUILD_LOG_LEVEL  >  WARNING
"""

from __future__ import annotations

import logging
import os
import sys

COMPILER_LOGGER = "schemabuild.compiler"

_FMT_DEBUG = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d %(message)s"
_FMT_INFO = "%(asctime)s [%(name)s] %(message)s"
_CONSOLE_DATEFMT = "%H:%M:%S"
_FILE_FORMAT = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"


def is_compiler_record(record: logging.LogRecord) -> bool:
    return record.name == COMPILER_LOGGER or record.name.startswith(COMPILER_LOGGER + ".")


class ConsoleFormatter(logging.Formatter):
    """Verbosity-dependent prefix for pipeline records, none for compiler output."""

    def format(self, record: logging.LogRecord) -> str:
        if is_compiler_record(record):
            return record.getMessage()
        return super().format(record)


class ThresholdFilter(logging.Filter):
    """Separate minimum levels for pipeline records and compiler output."""

    def __init__(self, level: int, compiler_level: int):
        super().__init__()
        self.level = level
        self.compiler_level = compiler_level

    def filter(self, record: logging.LogRecord) -> bool:
        threshold = self.compiler_level if is_compiler_record(record) else self.level
        return record.levelno >= threshold


def _console_handler(level: int, compiler_level: int) -> logging.Handler:
    if level <= logging.DEBUG:
        formatter = ConsoleFormatter(_FMT_DEBUG, datefmt=_CONSOLE_DATEFMT)
    elif level <= logging.INFO:
        formatter = ConsoleFormatter(_FMT_INFO, datefmt=_CONSOLE_DATEFMT)
    else:
        formatter = ConsoleFormatter("%(message)s")
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.addFilter(ThresholdFilter(level, compiler_level))
    return handler


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    compiler_level: str | None = None,
) -> None:
    """Configure process-wide logging.

    Args:
        level: Console level for pipeline records.
        log_file: Optional path of a log file receiving every record
            (compiler output included) in the detailed format.
        log_file_level: Level for the log file; defaults to ``level``.
        compiler_level: Console level for compiler output; defaults to
            ``level``.
    """
    console_level = _parse_level(level)
    compiler_threshold = _parse_level(compiler_level) if compiler_level else console_level

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(_console_handler(console_level, compiler_threshold))
    lowest = min(console_level, compiler_threshold)

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(file_level)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
        root.addHandler(file_handler)
        lowest = min(lowest, file_level)

    root.setLevel(lowest)
    logging.raiseExceptions = False


def _parse_level(level: str | None) -> int:
    """Level name to its numeric value; unknown names mean WARNING."""
    numeric = getattr(logging, (level or "").upper(), None)
    return numeric if isinstance(numeric, int) else logging.WARNING


def resolve_level(verbose: bool = False, quiet: bool = False, debug: bool = False) -> str:
    """Console level from CLI flags, falling back to SCHEMABUILD_LOG_LEVEL."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return os.environ.get("SCHEMABUILD_LOG_LEVEL", "WARNING")
