"""Console and file log sinks for the mirror process."""
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from typing import IO, Optional

from .config import LoggingConfig

PACKAGE_LOGGER = "dirmirror"
DATE_FORMAT = "%Y/%m/%d %H:%M:%S"

_SEVERITY_NAMES = {
    logging.DEBUG: "DEBUG",
    logging.INFO: "INFO",
    logging.WARNING: "WARNING",
    logging.ERROR: "ERROR",
    logging.CRITICAL: "FATAL",
}

_COLORS = {
    logging.DEBUG: "\033[34m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[31m",
}
_RESET = "\033[39m"


class LoggingAlreadyConfigured(RuntimeError):
    """Raised when the sinks are installed twice in the same process."""


class LogFormatError(ValueError):
    """Raised when a log call's format string does not match its arguments."""


class SeverityFormatter(logging.Formatter):
    """Renders ``YYYY/MM/DD HH:MM:SS | SEVERITY: message`` lines."""

    def __init__(self, *, show_source: bool, colored: bool = False):
        super().__init__(datefmt=DATE_FORMAT)
        self._show_source = show_source
        self._colored = colored

    def format(self, record: logging.LogRecord) -> str:
        try:
            message = record.getMessage()
        except (TypeError, ValueError) as exc:
            raise LogFormatError(
                f"Malformed log call at {record.pathname}:{record.lineno}: {record.msg!r}"
            ) from exc

        line = f"{self.formatTime(record, self.datefmt)} | {severity_name(record.levelno)}: {message}"
        if self._show_source:
            line += f" (FROM: {record.filename}:{record.lineno})"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        if self._colored and record.levelno in _COLORS:
            line = f"{_COLORS[record.levelno]}{line}{_RESET}"
        return line


class _StrictErrors:
    # logging.Handler swallows formatting errors; a malformed call is a bug, so let it surface.
    def handleError(self, record: logging.LogRecord) -> None:
        exc = sys.exc_info()[1]
        if isinstance(exc, LogFormatError):
            raise exc
        super().handleError(record)  # type: ignore[misc]


class ConsoleHandler(_StrictErrors, logging.StreamHandler):
    pass


class LogFileHandler(_StrictErrors, logging.FileHandler):
    pass


@dataclass
class LogSinks:
    """The two handlers installed on the package logger."""

    logger: logging.Logger
    console: ConsoleHandler
    file: LogFileHandler
    previous_level: int
    previous_propagate: bool

    def close(self) -> None:
        for handler in (self.console, self.file):
            self.logger.removeHandler(handler)
            handler.flush()
            handler.close()
        self.logger.setLevel(self.previous_level)
        self.logger.propagate = self.previous_propagate


def severity_name(levelno: int) -> str:
    return _SEVERITY_NAMES.get(levelno, logging.getLevelName(levelno))


def configure_logging(config: LoggingConfig, *, stream: Optional[IO[str]] = None) -> LogSinks:
    """Attach the console and file sinks to the package logger."""

    logger = logging.getLogger(PACKAGE_LOGGER)
    if any(isinstance(handler, (ConsoleHandler, LogFileHandler)) for handler in logger.handlers):
        raise LoggingAlreadyConfigured("Logging for dirmirror has already been configured")

    console = ConsoleHandler(stream if stream is not None else sys.stdout)
    console.setFormatter(SeverityFormatter(show_source=config.show_source, colored=config.colored))

    file_handler = LogFileHandler(config.log_file, mode="w", encoding="utf-8")
    file_handler.setFormatter(SeverityFormatter(show_source=True))

    sinks = LogSinks(
        logger=logger,
        console=console,
        file=file_handler,
        previous_level=logger.level,
        previous_propagate=logger.propagate,
    )
    logger.setLevel(logging.DEBUG if config.debug else logging.INFO)
    logger.propagate = False
    logger.addHandler(console)
    logger.addHandler(file_handler)
    return sinks
