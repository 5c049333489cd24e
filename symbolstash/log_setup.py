"""Logging setup: level filters, output formats and error reporting."""

from __future__ import annotations

import json
import logging
import os
import sys
import traceback
from collections.abc import Iterator
from datetime import datetime, timezone

from .config import Config, LogFormat

TRACE = 5
OFF = logging.CRITICAL + 10
logging.addLevelName(TRACE, "TRACE")

LOG_ENV = "SYMBOLSTASH_LOG"
BACKTRACE_ENV = "SYMBOLSTASH_BACKTRACE"

_LEVELS = {
    "off": OFF,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": TRACE,
}

_FILTERS = {
    "off": "",
    "error": "ERROR",
    "warn": "WARN",
    "info": "INFO",
    "debug": "INFO,symbolstash=DEBUG",
    "trace": "INFO,symbolstash=TRACE",
}

_COLORS = {"ERROR": "31", "WARN": "33", "INFO": "32", "DEBUG": "34", "TRACE": "35"}


def get_rust_log(level: str) -> str:
    """Return the default filter specification for a configured log level."""
    try:
        return _FILTERS[level.lower()]
    except KeyError:
        raise ValueError(f"unknown log level {level!r}") from None


def _level_name(levelno: int) -> str:
    if levelno >= logging.ERROR:
        return "ERROR"
    if levelno >= logging.WARNING:
        return "WARN"
    if levelno >= logging.INFO:
        return "INFO"
    if levelno >= logging.DEBUG:
        return "DEBUG"
    return "TRACE"


def _parse_filters(spec: str) -> tuple[int, dict[str, int]]:
    """Parse ``LEVEL,module=LEVEL,...`` into a default level and per-module levels."""
    default: int | None = None
    modules: dict[str, int] = {}
    for part in spec.split(","):
        part = part.strip()
        if not part:
            continue
        name, sep, level_text = part.partition("=")
        name = name.strip()
        if sep:
            level = _LEVELS.get(level_text.strip().lower())
            if level is None:
                continue
            if name:
                modules[name] = level
            else:
                default = level
        else:
            level = _LEVELS.get(name.lower())
            if level is None:
                modules[name] = TRACE
            else:
                default = level
    if default is None:
        default = logging.ERROR if not modules else OFF
    return default, modules


def _utc(created: float) -> datetime:
    return datetime.fromtimestamp(created, timezone.utc)


class SimplifiedFormatter(logging.Formatter):
    """Plain one-line records: timestamp, logger, level and message."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = _utc(record.created).strftime("%Y-%m-%dT%H:%M:%SZ")
        text = (
            f"{timestamp} [{record.name or '<unknown>'}] "
            f"{_level_name(record.levelno)}: {record.getMessage()}"
        )
        if record.exc_info:
            text += "\n" + self.formatException(record.exc_info)
        return text


class JsonFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": _utc(record.created).isoformat().replace("+00:00", "Z"),
            "level": _level_name(record.levelno),
            "logger": record.name,
            "message": record.getMessage(),
            "module_path": record.module,
            "filename": record.pathname,
            "lineno": record.lineno,
        }
        return json.dumps(payload)


class _PrettyFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        name = _level_name(record.levelno)
        text = (
            f"\x1b[{_COLORS[name]}m{name:<5}\x1b[0m "
            f"\x1b[1m{record.name}\x1b[0m > {record.getMessage()}"
        )
        if record.exc_info:
            text += "\n" + self.formatException(record.exc_info)
        return text


def _pick_formatter(log_format: LogFormat) -> logging.Formatter:
    attended = getattr(sys.stderr, "isatty", lambda: False)()
    if log_format is LogFormat.PRETTY or (log_format is LogFormat.AUTO and attended):
        return _PrettyFormatter()
    if log_format is LogFormat.JSON:
        return JsonFormatter()
    return SimplifiedFormatter()


def init_logging(config: Config) -> None:
    """Configure the root logger from the configuration and the environment.

    The ``SYMBOLSTASH_LOG`` variable holds the filter specification and defaults to
    the configured level; ``SYMBOLSTASH_BACKTRACE`` is turned on when backtraces are
    enabled.
    """
    settings = config.logging
    if settings.enable_backtraces:
        os.environ[BACKTRACE_ENV] = "1"
    if LOG_ENV not in os.environ:
        os.environ[LOG_ENV] = get_rust_log(settings.level)

    default, modules = _parse_filters(os.environ[LOG_ENV])

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_symbolstash_handler", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler._symbolstash_handler = True  # type: ignore[attr-defined]
    handler.setFormatter(_pick_formatter(settings.format))
    root.addHandler(handler)
    root.setLevel(default)
    for name, level in modules.items():
        logging.getLogger(name).setLevel(level)


def backtrace_enabled() -> bool:
    """Return whether tracebacks are printed along with errors."""
    return os.environ.get(BACKTRACE_ENV) in ("1", "full")


def _causes(error: BaseException) -> Iterator[BaseException]:
    seen = {id(error)}
    current: BaseException | None = error
    while current is not None:
        if current.__cause__ is not None:
            current = current.__cause__
        elif not current.__suppress_context__:
            current = current.__context__
        else:
            current = None
        if current is None or id(current) in seen:
            return
        seen.add(id(current))
        yield current


def format_error(error: BaseException) -> str:
    """Render an error with its chain of causes and, if enabled, its traceback."""
    parts = [str(error)]
    parts.extend(f"\n  caused by: {cause}" for cause in _causes(error))
    if backtrace_enabled() and error.__traceback__ is not None:
        trace = "".join(traceback.format_tb(error.__traceback__)).rstrip("\n")
        parts.append(f"\n\n{trace}")
    return "".join(parts)


def ensure_log_error(error: BaseException) -> None:
    """Log an error, or print it to stderr when logging is not set up."""
    logger = logging.getLogger("symbolstash")
    if logger.isEnabledFor(logging.ERROR) and logger.hasHandlers():
        logger.error("%s", format_error(error))
    else:
        print(f"error: {format_error(error)}", file=sys.stderr)