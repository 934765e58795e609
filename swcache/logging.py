"""Structured JSON logging for cache lifecycle and request events.

Call sites build a :class:`LogRecord` and hand it to :func:`debug`,
:func:`info`, :func:`warning` or :func:`error`. Records travel through a
queue to stdout and, when configured, to a log file and an error-only file.
"""

import dataclasses
import enum
import json
import logging
import os
import queue
import sys
import traceback
from datetime import datetime, timezone
from logging import Handler
from logging.handlers import QueueHandler, QueueListener
from typing import Any, Dict, List, Optional, Tuple

from .config import Settings


_REDACT_KEYS: set[str] = set()

_logger: Optional[logging.Logger] = None
_log_listener: Optional[QueueListener] = None

# Longest string kept in the ``data`` field of a log entry
_MAX_DATA_STRING_LENGTH = 5000


def _sanitize_for_json(obj: Any) -> Any:
    """Make ``obj`` JSON-safe, redacting configured keys and dropping nulls."""
    if isinstance(obj, bytes):
        return obj.decode("utf-8", "replace")
    if isinstance(obj, enum.Enum):
        return obj.value
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return _sanitize_for_json(dataclasses.asdict(obj))
    if isinstance(obj, dict):
        sanitized = {}
        for k, v in obj.items():
            if isinstance(k, str) and k.lower() in _REDACT_KEYS:
                sanitized[k] = "***REDACTED***"
                continue
            value = _sanitize_for_json(v)
            if value is not None:
                sanitized[k] = value
        return sanitized
    if isinstance(obj, (list, tuple, set, frozenset)):
        return [_sanitize_for_json(x) for x in obj if x is not None]
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    return repr(obj)


def _truncate(value: Any) -> Any:
    if isinstance(value, str) and len(value) > _MAX_DATA_STRING_LENGTH:
        return value[:_MAX_DATA_STRING_LENGTH] + "...[truncated]"
    return value


class LogEvent(enum.Enum):
    """Event names used in ``LogRecord.event``."""

    CONTROLLER_INSTALL = "controller_install"
    CONTROLLER_ACTIVATE = "controller_activate"
    CONTROLLER_PROMOTED = "controller_promoted"
    PRECACHE = "precache"
    CACHE_EVENT = "cache_event"
    CACHE_CLEANUP = "cache_cleanup"
    STORE_EVENT = "store_event"
    FETCH_STRATEGY = "fetch_strategy"
    NETWORK_FAILURE = "network_failure"
    OFFLINE_FALLBACK = "offline_fallback"
    REVALIDATION = "revalidation"
    CONTROL_MESSAGE = "control_message"
    BACKGROUND_SYNC = "background_sync"
    REQUEST_COMPLETED = "request_completed"
    REQUEST_FAILURE = "request_failure"
    HEALTH_CHECK = "health_check"


@dataclasses.dataclass
class LogError:
    """Exception attached to a log entry. ``stack_trace`` is kept for errors only."""

    name: str
    message: str
    stack_trace: Optional[str] = None
    args: Optional[Tuple[Any, ...]] = None


@dataclasses.dataclass
class LogRecord:
    """
    One structured log entry.

    Attributes:
        event: A :class:`LogEvent` value.
        message: Short human-readable summary.
        request_id: Correlates entries of one HTTP request.
        data: Context such as URLs, store names and versions.
        error: Filled in from the exception passed to the level helper.
    """

    event: str
    message: str
    request_id: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    error: Optional[LogError] = None


class JSONFormatter(logging.Formatter):
    """
    Renders records as JSON: compact lines by default, indented and without
    stack traces when ``pretty`` is set.
    """

    def __init__(self, pretty: bool = False):
        super().__init__()
        self.pretty = pretty

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
        }
        payload = getattr(record, "log_record", None)
        if isinstance(payload, LogRecord):
            detail = _sanitize_for_json(payload)
            if isinstance(detail.get("data"), dict):
                detail["data"] = {k: _truncate(v) for k, v in detail["data"].items()}
            if self.pretty and isinstance(detail.get("error"), dict):
                detail["error"].pop("stack_trace", None)
            entry["detail"] = detail
        else:
            entry["message"] = record.getMessage()
            if record.exc_info and record.exc_info[1] is not None:
                exc = record.exc_info[1]
                entry["error"] = _sanitize_for_json(
                    _error_from(exc, with_stack=not self.pretty)
                )

        if self.pretty:
            return json.dumps(_sanitize_for_json(entry), ensure_ascii=False, indent=2)
        return json.dumps(
            _sanitize_for_json(entry), ensure_ascii=False, separators=(",", ":")
        )


def _error_from(exc: BaseException, with_stack: bool) -> LogError:
    stack = None
    if with_stack:
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    args = _sanitize_for_json(exc.args)
    return LogError(
        name=type(exc).__name__,
        message=str(exc),
        stack_trace=stack,
        args=tuple(args) if isinstance(args, list) else (args,),
    )


def _file_handler(path: str, level: int = logging.NOTSET) -> Optional[Handler]:
    try:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    except OSError as e:
        logging.getLogger(__name__).warning("Failed to open log file %s: %s", path, e)
        return None
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())
    return handler


def init_logging(settings: Settings) -> logging.Logger:
    """Route the application and uvicorn loggers through one queue listener."""
    global _logger, _log_listener, _REDACT_KEYS
    shutdown_logging()

    log_queue: queue.Queue = queue.Queue(-1)
    queue_handler = QueueHandler(log_queue)

    console_handler = logging.StreamHandler(stream=sys.stdout)
    console_handler.setFormatter(JSONFormatter(pretty=settings.log_pretty_console))
    handlers: List[Handler] = [console_handler]

    if settings.log_file_path:
        handler = _file_handler(settings.log_file_path)
        if handler:
            handlers.append(handler)
    if settings.error_log_file_path:
        handler = _file_handler(settings.error_log_file_path, logging.ERROR)
        if handler:
            handlers.append(handler)

    _log_listener = QueueListener(log_queue, *handlers, respect_handler_level=True)
    _log_listener.start()

    levels = {
        "": logging.WARNING,
        settings.app_name: settings.log_level.upper(),
        "uvicorn": logging.INFO,
        "uvicorn.error": logging.INFO,
        "uvicorn.access": logging.INFO,
    }
    for name, level in levels.items():
        logger = logging.getLogger(name)
        logger.handlers = [queue_handler]
        logger.propagate = name == ""
        logger.setLevel(level)

    _REDACT_KEYS = {k.lower() for k in settings.redact_log_fields}
    _logger = logging.getLogger(settings.app_name)
    return _logger


def shutdown_logging() -> None:
    """Stop the queue listener, flushing pending entries."""
    global _log_listener
    if _log_listener:
        _log_listener.stop()
        _log_listener = None


def _log(level: int, record: LogRecord, exc: Optional[BaseException] = None) -> None:
    if exc is not None:
        record.error = _error_from(exc, with_stack=level >= logging.ERROR)
        if not record.message:
            record.message = str(exc) or "An unspecified error occurred"

    if _logger:
        _logger.log(level=level, msg=record.message, extra={"log_record": record})


def is_debug_enabled() -> bool:
    return _logger is not None and _logger.isEnabledFor(logging.DEBUG)


def debug(record: LogRecord, exc: Optional[BaseException] = None) -> None:
    _log(logging.DEBUG, record, exc=exc)


def info(record: LogRecord) -> None:
    _log(logging.INFO, record)


def warning(record: LogRecord, exc: Optional[BaseException] = None) -> None:
    _log(logging.WARNING, record, exc=exc)


def error(record: LogRecord, exc: Optional[BaseException] = None) -> None:
    _log(logging.ERROR, record, exc=exc)
