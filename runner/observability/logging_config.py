"""
Severity-routed logging for the browser runner.

Design decision: keep Python's built-in logging and model each destination
as a handler subscribed to the single `runner` logger, filtered by a level
band. Library modules keep using logging.getLogger(__name__); everything
under the `runner` namespace flows through the same sinks.

Sinks (registered once by EventLogger.configure):
- console: always on, human-readable (or JSON when console_format=json)
- success file: events strictly below WARNING
- failure file: events at WARNING and above

Usage:
    from runner.observability.logging_config import EventLogger

    events = EventLogger()
    events.configure(settings)
    events.info("Workflow started")
    events.warn("Retrying", "workflow.goto", attempt=2)
    try:
        ...
    except Exception as e:
        events.error(e, "workflow.goto", url=url)
    events.close()
"""

from __future__ import annotations

import json
import logging
import sys
import threading
from datetime import date, datetime, timezone
from pathlib import Path
from typing import IO, Any, Optional

from runner.config.schema import LoggingSettings, Settings

# ─── Levels ───────────────────────────────────────────────────────────

VERBOSE = 5
logging.addLevelName(VERBOSE, "VERBOSE")

LEVELS: dict[str, int] = {
    "verbose": VERBOSE,
    "debug": logging.DEBUG,
    "information": logging.INFO,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "critical": logging.CRITICAL,
}

_SHORT_LEVELS = {
    VERBOSE: "VRB",
    logging.DEBUG: "DBG",
    logging.INFO: "INF",
    logging.WARNING: "WRN",
    logging.ERROR: "ERR",
    logging.CRITICAL: "FTL",
}

DATE_TOKEN = "{Date}"


def parse_level(name: Optional[str]) -> int:
    """Map a configured level name to a logging level; unknown -> INFO."""
    if not name:
        return logging.INFO
    return LEVELS.get(name.strip().lower(), logging.INFO)


def short_level(levelno: int) -> str:
    return _SHORT_LEVELS.get(levelno, logging.getLevelName(levelno)[:3].upper())


# ─── Paths ────────────────────────────────────────────────────────────


def date_token(today: date) -> str:
    return today.strftime("%d-%m-%Y")


def resolve_log_paths(
    logging_settings: LoggingSettings,
    today: Optional[date] = None,
) -> tuple[Path, Path]:
    """
    Build the (success, failure) file paths for the given day.

    The {Date} token in each template becomes dd-mm-YYYY and the result is
    placed under the configured log directory.
    """
    token = date_token(today or date.today())
    directory = Path(logging_settings.directory)
    return (
        directory / logging_settings.success_file.replace(DATE_TOKEN, token),
        directory / logging_settings.failure_file.replace(DATE_TOKEN, token),
    )


# ─── Extra fields ─────────────────────────────────────────────────────


_STANDARD_FIELDS = frozenset({
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "exc_info", "exc_text", "stack_info",
    "lineno", "funcName", "created", "msecs", "relativeCreated",
    "thread", "threadName", "processName", "process", "message",
    "taskName", "asctime",
})


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _STANDARD_FIELDS and not key.startswith("_")
    }


def _format_extras(record: logging.LogRecord) -> str:
    # context is already part of the "[context] message" text
    extras = [
        f"{key}={value}"
        for key, value in _extra_fields(record).items()
        if key != "context"
    ]
    return f" [{' '.join(extras)}]" if extras else ""


# ─── Filters ──────────────────────────────────────────────────────────


class LevelBandFilter(logging.Filter):
    """
    Passes records with min_level <= levelno < max_level.

    max_level=None means no upper bound.
    """

    def __init__(self, min_level: int = logging.NOTSET, max_level: Optional[int] = None):
        super().__init__()
        self.min_level = min_level
        self.max_level = max_level

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno < self.min_level:
            return False
        if self.max_level is not None and record.levelno >= self.max_level:
            return False
        return True


# ─── Formatters ───────────────────────────────────────────────────────


class ConsoleFormatter(logging.Formatter):
    """
    Colorful, human-readable console lines.

    Format: [HH:MM:SS LVL] message [key=value key=value]
    """

    COLORS = {
        VERBOSE: "\033[90m",           # Grey
        logging.DEBUG: "\033[36m",     # Cyan
        logging.INFO: "\033[32m",      # Green
        logging.WARNING: "\033[33m",   # Yellow
        logging.ERROR: "\033[31m",     # Red
        logging.CRITICAL: "\033[41m",  # Red background
    }
    RESET = "\033[0m"

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        timestamp = self.formatTime(record, "%H:%M:%S")
        level = short_level(record.levelno)
        if self.use_color:
            color = self.COLORS.get(record.levelno, self.RESET)
            level = f"{color}{level}{self.RESET}"

        formatted = f"[{timestamp} {level}] {record.getMessage()}{_format_extras(record)}"

        if record.exc_info and record.exc_info[1]:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


class FileFormatter(logging.Formatter):
    """
    Plain text lines for the dated log files.

    Format: YYYY-mm-dd HH:MM:SS [LVL] message [key=value]
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = self.formatTime(record, "%Y-%m-%d %H:%M:%S")
        formatted = (
            f"{timestamp} [{short_level(record.levelno)}] "
            f"{record.getMessage()}{_format_extras(record)}"
        )
        if record.exc_info and record.exc_info[1]:
            formatted += f"\n{self.formatException(record.exc_info)}"
        return formatted


class JSONFormatter(logging.Formatter):
    """
    Outputs log records as single-line JSON objects.

    Includes standard fields (timestamp, level, logger, message) plus
    any extra fields passed via `logger.info("msg", extra={...})`.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in _extra_fields(record).items():
            try:
                json.dumps(value)
                entry[key] = value
            except (TypeError, ValueError):
                entry[key] = str(value)

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


# ─── Handlers ─────────────────────────────────────────────────────────


class DatedFileHandler(logging.FileHandler):
    """
    FileHandler that opens lazily and creates missing parent directories
    on the first write.
    """

    def __init__(self, filename: str | Path, encoding: str = "utf-8"):
        super().__init__(filename, mode="a", encoding=encoding, delay=True)

    def _open(self):
        Path(self.baseFilename).parent.mkdir(parents=True, exist_ok=True)
        return super()._open()


# ─── Event logger ─────────────────────────────────────────────────────

# Logger name -> the EventLogger whose sinks are attached to it
_OWNERS: dict[str, "EventLogger"] = {}
_owners_lock = threading.Lock()


class EventLogger:
    """
    Explicit, per-run logging facade over the `runner` logger.

    Construct once at startup, configure from the settings snapshot and
    pass it to every component. configure() is idempotent, and only one
    EventLogger per logger name can be configured at a time; close() flushes
    and detaches every sink, after which all emit methods are no-ops.

    Args:
        name: Logger namespace the sinks subscribe to.
    """

    def __init__(self, name: str = "runner") -> None:
        self.name = name
        self._logger = logging.getLogger(name)
        self._lock = threading.Lock()
        self._sinks: list[logging.Handler] = []
        self._configured = False
        self._closed = False
        self._previous_propagate = self._logger.propagate
        self._previous_level = self._logger.level
        self.success_path: Optional[Path] = None
        self.failure_path: Optional[Path] = None

    # ─── Properties ──────────────────────────────────────────────────

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    @property
    def is_configured(self) -> bool:
        return self._configured

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def sinks(self) -> list[logging.Handler]:
        return list(self._sinks)

    # ─── Configuration ───────────────────────────────────────────────

    def configure(
        self,
        settings: Settings,
        *,
        today: Optional[date] = None,
        stream: Optional[IO[str]] = None,
    ) -> None:
        """
        Attach the console and the two dated file sinks.

        A second call is a no-op, so sinks are never registered twice.
        The same holds across instances: while another EventLogger owns
        the logger name, this call attaches nothing and leaves
        is_configured False.
        File paths are computed here once; a run that crosses midnight
        keeps writing to the files of the day it was configured.

        Args:
            settings: Loaded settings snapshot.
            today: Date used for the {Date} token (default: today).
            stream: Console stream (default: stderr).
        """
        with self._lock:
            if self._configured or self._closed:
                return
            with _owners_lock:
                owner = _OWNERS.get(self.name)
                if owner is not None and owner is not self:
                    return
                _OWNERS[self.name] = self

            log_settings = settings.logging
            self._previous_level = self._logger.level
            self._logger.setLevel(parse_level(log_settings.minimum_level))
            self._previous_propagate = self._logger.propagate
            self._logger.propagate = False

            console = logging.StreamHandler(stream or sys.stderr)
            if log_settings.console_format == "json":
                console.setFormatter(JSONFormatter())
            else:
                console.setFormatter(ConsoleFormatter())
            self._attach(console)

            self.success_path, self.failure_path = resolve_log_paths(log_settings, today)

            success = DatedFileHandler(self.success_path)
            success.setFormatter(FileFormatter())
            self._attach(success, max_level=logging.WARNING)

            failure = DatedFileHandler(self.failure_path)
            failure.setFormatter(FileFormatter())
            self._attach(failure, min_level=logging.WARNING)

            self._configured = True

        self.info("Logger configured")

    def add_sink(
        self,
        handler: logging.Handler,
        *,
        min_level: int = logging.NOTSET,
        max_level: Optional[int] = None,
    ) -> logging.Handler:
        """Subscribe another handler to the event stream for a level band."""
        with self._lock:
            if self._closed:
                return handler
            self._attach(handler, min_level=min_level, max_level=max_level)
        return handler

    def _attach(
        self,
        handler: logging.Handler,
        *,
        min_level: int = logging.NOTSET,
        max_level: Optional[int] = None,
    ) -> None:
        handler.addFilter(LevelBandFilter(min_level, max_level))
        self._logger.addHandler(handler)
        self._sinks.append(handler)

    # ─── Emitting ────────────────────────────────────────────────────

    def verbose(self, message: str, **fields: Any) -> None:
        self._emit(VERBOSE, message, fields)

    def debug(self, message: str, **fields: Any) -> None:
        self._emit(logging.DEBUG, message, fields)

    def info(self, message: str, **fields: Any) -> None:
        self._emit(logging.INFO, message, fields)

    def warn(self, message: str, context: str, **fields: Any) -> None:
        self._emit(logging.WARNING, f"[{context}] {message}", fields, context=context)

    def error(self, error: BaseException, context: str, **fields: Any) -> None:
        """Log an exception with its traceback and originating operation."""
        self._emit(
            logging.ERROR,
            f"[{context}] Error: {error}",
            fields,
            context=context,
            error=error,
        )

    def fatal(
        self,
        error: BaseException,
        context: str,
        *,
        include_traceback: bool = True,
        **fields: Any,
    ) -> None:
        """
        Log a run-ending error.

        Pass include_traceback=False when the error was already logged
        with its traceback where it happened; only the summary line is kept.
        """
        self._emit(
            logging.CRITICAL,
            f"[{context}] Fatal: {type(error).__name__}: {error}",
            fields,
            context=context,
            error=error if include_traceback else None,
        )

    def _emit(
        self,
        level: int,
        message: str,
        fields: dict[str, Any],
        *,
        context: Optional[str] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        if self._closed:
            return

        extra: dict[str, Any] = {}
        if context is not None:
            extra["context"] = context
        for key, value in fields.items():
            # LogRecord refuses extras that shadow its own attributes
            safe_key = f"ctx_{key}" if key in _STANDARD_FIELDS else key
            extra[safe_key] = value

        exc_info = None
        if error is not None:
            exc_info = (type(error), error, error.__traceback__)

        self._logger.log(level, message, exc_info=exc_info, extra=extra or None)

    # ─── Shutdown ────────────────────────────────────────────────────

    def close(self) -> None:
        """Flush and release every sink. Safe to call more than once."""
        if self._closed:
            return

        if self._configured:
            self.info("Shutting down logger")

        with self._lock:
            self._closed = True
            for handler in self._sinks:
                try:
                    handler.flush()
                    handler.close()
                finally:
                    self._logger.removeHandler(handler)
            self._sinks.clear()
            if self._configured:
                self._logger.propagate = self._previous_propagate
                self._logger.setLevel(self._previous_level)
            with _owners_lock:
                if _OWNERS.get(self.name) is self:
                    del _OWNERS[self.name]
