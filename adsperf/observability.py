"""
Logging setup for adsperf: request IDs, scoped log fields, token redaction, timing.

Every log line produced while serving a performance request can carry the
request ID sent to the Graph API as ``X-Request-ID`` and the account being
queried. Graph API URLs embed the account's access token as a query
parameter, so both formatters mask token-like parameters before output.

Usage:
    from adsperf.observability import setup_logging, get_logger, correlation_context, log_scope

    setup_logging(level=config.log_level, json_format=config.log_json)
    logger = get_logger(__name__)

    with correlation_context(request_id), log_scope(account_id=account.account_id):
        logger.info("Fetching insights", extra={"range": str(time_range)})
"""
import asyncio
import functools
import json
import logging
import re
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, Optional

# Request ID, forwarded to the Graph API as X-Request-ID
_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Fields added to every line (account_id, range, ...)
_log_context: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})

# LogRecord attributes that are not user-supplied extras
_RECORD_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "asctime", "taskName",
})

_SECRET_PARAMS = ("access_token", "appsecret_proof", "client_secret")
_SECRET_RE = re.compile(r"\b(%s)=[^&\s\"']+" % "|".join(_SECRET_PARAMS))

REDACTED = "***"


def redact(text: str) -> str:
    """Mask Graph API credentials passed as ``name=value`` pairs."""
    return _SECRET_RE.sub(lambda m: f"{m.group(1)}={REDACTED}", text)


def _redact_value(value: Any) -> Any:
    return redact(value) if isinstance(value, str) else value


# ═══════════════════════════════════════════════════════════════════════════════
# REQUEST IDS
# ═══════════════════════════════════════════════════════════════════════════════

def generate_correlation_id() -> str:
    """Short random request ID."""
    return uuid.uuid4().hex[:8]


def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str) -> None:
    _correlation_id.set(correlation_id)


@contextmanager
def correlation_context(correlation_id: Optional[str] = None) -> Iterator[str]:
    """Bind a request ID (generated if not given) for the duration of the block."""
    token = _correlation_id.set(correlation_id or generate_correlation_id())
    try:
        yield _correlation_id.get()
    finally:
        _correlation_id.reset(token)


# ═══════════════════════════════════════════════════════════════════════════════
# LOG FIELDS
# ═══════════════════════════════════════════════════════════════════════════════

def add_log_context(**fields) -> None:
    """Attach fields to every following log line in this context."""
    _log_context.set({**_log_context.get(), **fields})


def get_log_context() -> Dict[str, Any]:
    return dict(_log_context.get())


def clear_log_context() -> None:
    _log_context.set({})


@contextmanager
def log_scope(**fields) -> Iterator[Dict[str, Any]]:
    """
    Attach fields to log lines emitted inside the block only.

    The previous fields are restored on exit, including when the block raises.
    Tasks started inside the block (asyncio.gather) inherit the fields.
    """
    token = _log_context.set({**_log_context.get(), **fields})
    try:
        yield _log_context.get()
    finally:
        _log_context.reset(token)


def _line_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Scoped fields overlaid with the record's own extras, secrets masked."""
    fields = dict(_log_context.get())
    for key, value in record.__dict__.items():
        if key in _RECORD_ATTRS or key.startswith("_"):
            continue
        fields[key] = value
    return {key: _redact_value(value) for key, value in fields.items()}


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per line.

    Keys: timestamp, level, logger, message, correlation_id (when bound),
    scoped and per-record fields, exception (when present).
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": redact(record.getMessage()),
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            entry["correlation_id"] = correlation_id

        entry.update(_line_fields(record))

        if record.exc_info:
            entry["exception"] = redact(self.formatException(record.exc_info))

        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """TIMESTAMP - LEVEL - LOGGER [REQUEST_ID] - MESSAGE | fields"""

    def format(self, record: logging.LogRecord) -> str:
        correlation_id = get_correlation_id()
        request = f" [{correlation_id}]" if correlation_id else ""
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

        line = f"{timestamp} - {record.levelname:8} - {record.name}{request} - {redact(record.getMessage())}"

        fields = _line_fields(record)
        if fields:
            line += f" | {fields}"

        if record.exc_info:
            line += "\n" + redact(self.formatException(record.exc_info))

        return line


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
    include_libs: bool = False
) -> None:
    """
    Configure the root logger.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        json_format: JSON lines instead of human-readable output
        include_libs: Keep httpx/httpcore request logging at the root level
    """
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter() if json_format else HumanReadableFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper()))

    # httpx logs every request URL at INFO
    if not include_libs:
        for name in ("httpx", "httpcore"):
            logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


# ═══════════════════════════════════════════════════════════════════════════════
# TIMING
# ═══════════════════════════════════════════════════════════════════════════════

def _log_duration(logger: logging.Logger, name: str, elapsed_ms: float, warn_threshold_ms: float) -> None:
    level = logging.WARNING if elapsed_ms > warn_threshold_ms else logging.DEBUG
    logger.log(level, f"{name} completed", extra={"duration_ms": round(elapsed_ms, 2)})


class Timer:
    """
    Measure a block; log the duration when a logger is given.

    Usage:
        with Timer("fetch_account_insights", logger) as t:
            rows = await adapter.fetch_rows(...)
        t.elapsed_ms
    """

    def __init__(
        self,
        name: str,
        logger: Optional[logging.Logger] = None,
        warn_threshold_ms: float = 5000,
    ):
        self.name = name
        self.logger = logger
        self.warn_threshold_ms = warn_threshold_ms
        self.elapsed_ms: float = 0
        self._started: float = 0

    def __enter__(self) -> "Timer":
        self._started = time.perf_counter()
        return self

    def __exit__(self, *exc_info):
        self.elapsed_ms = (time.perf_counter() - self._started) * 1000
        if self.logger:
            _log_duration(self.logger, self.name, self.elapsed_ms, self.warn_threshold_ms)


def timed(name: Optional[str] = None, warn_threshold_ms: float = 5000):
    """Decorator form of Timer for sync and async functions; logs to the function's module logger."""
    def decorator(func: Callable) -> Callable:
        operation = name or func.__name__
        func_logger = get_logger(func.__module__)

        if asyncio.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                with Timer(operation, func_logger, warn_threshold_ms):
                    return await func(*args, **kwargs)
            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            with Timer(operation, func_logger, warn_threshold_ms):
                return func(*args, **kwargs)
        return sync_wrapper

    return decorator
