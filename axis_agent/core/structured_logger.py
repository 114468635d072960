"""
Structured Logger — per-turn context on every log line.

A ``StructuredLogger`` carries a trace id, the user id, the provider and
the current tool, plus free-form fields passed as keyword arguments.  Two
output modes:

- **JSON mode** (``AXIS_LOG_FORMAT=json``): one JSON object per line.
- **Human mode** (default): ``HH:MM:SS [LEVEL] name: [trace] message k=v``.
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterator, Optional

CONTEXT_FIELDS = ("trace_id", "user_id", "tool_name", "provider_name")


@dataclass(frozen=True)
class LogContext:
    """Contextual fields attached to every line a logger emits."""
    trace_id: str = ""
    user_id: str = ""
    tool_name: str = ""
    provider_name: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    def merged_with(self, **kwargs: Any) -> "LogContext":
        extra = {**self.extra, **kwargs.pop("extra", {})}
        known = {k: str(v) for k, v in kwargs.items() if k in CONTEXT_FIELDS}
        extra.update({k: v for k, v in kwargs.items() if k not in CONTEXT_FIELDS})
        return replace(self, extra=extra, **known)


_current_context: ContextVar[LogContext] = ContextVar("axis_log_context", default=LogContext())


def current_log_context() -> LogContext:
    return _current_context.get()


@contextmanager
def log_context(**kwargs: Any) -> Iterator[LogContext]:
    """Merge fields into the ambient context for the duration of the block."""
    ctx = _current_context.get().merged_with(**kwargs)
    token = _current_context.set(ctx)
    try:
        yield ctx
    finally:
        _current_context.reset(token)


class StructuredFormatter(logging.Formatter):
    """Emits each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for ctx_field in CONTEXT_FIELDS:
            val = getattr(record, ctx_field, "")
            if val:
                entry[ctx_field] = val
        log_extra = getattr(record, "log_extra", None)
        if log_extra:
            entry["extra"] = log_extra
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanFormatter(logging.Formatter):
    """Console format with a ``[trace_id]`` prefix and trailing ``key=value`` pairs."""

    def __init__(self, fmt: Optional[str] = None, datefmt: Optional[str] = None):
        super().__init__(
            fmt=fmt or "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt=datefmt or "%H:%M:%S",
        )

    def formatMessage(self, record: logging.LogRecord) -> str:
        message = record.message
        trace_id = getattr(record, "trace_id", "")
        if trace_id:
            message = f"[{trace_id}] {message}"
        log_extra = getattr(record, "log_extra", None)
        if log_extra:
            message += " " + " ".join(f"{k}={v}" for k, v in log_extra.items())
        # Work on a copy so other handlers see the original message.
        return self._style.format(_RecordView(record, message))


class _RecordView:
    def __init__(self, record: logging.LogRecord, message: str):
        self.__dict__.update(record.__dict__)
        self.message = message


class TraceIDFilter(logging.Filter):
    """Fills missing context attributes from the ambient ``log_context`` block."""

    def __init__(self, context: Optional[LogContext] = None):
        super().__init__()
        self.context = context

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = self.context or current_log_context()
        for ctx_field in CONTEXT_FIELDS:
            if not getattr(record, ctx_field, ""):
                setattr(record, ctx_field, getattr(ctx, ctx_field))
        return True


class StructuredLogger:
    """
    Logger wrapper that stamps context onto every record.

    Usage::

        log = StructuredLogger(__name__).with_context(trace_id="abc123", provider_name="gemini")
        log.info("Turn complete", tools=2)
    """

    def __init__(self, name: str, context: Optional[LogContext] = None):
        self._name = name
        self._logger = logging.getLogger(name)
        self._context = context or LogContext()

    def with_context(self, **kwargs: Any) -> "StructuredLogger":
        """Return a new logger with merged context."""
        return StructuredLogger(self._name, context=self._context.merged_with(**kwargs))

    def debug(self, msg: str, **extra: Any) -> None:
        self._log(logging.DEBUG, msg, extra)

    def info(self, msg: str, **extra: Any) -> None:
        self._log(logging.INFO, msg, extra)

    def warning(self, msg: str, **extra: Any) -> None:
        self._log(logging.WARNING, msg, extra)

    def error(self, msg: str, **extra: Any) -> None:
        self._log(logging.ERROR, msg, extra)

    def _log(self, level: int, msg: str, extra: Dict[str, Any]) -> None:
        if not self._logger.isEnabledFor(level):
            return
        record = self._logger.makeRecord(self._name, level, "", 0, msg, (), None)
        for ctx_field in CONTEXT_FIELDS:
            setattr(record, ctx_field, getattr(self._context, ctx_field))
        merged = {**self._context.extra, **extra}
        if merged:
            record.log_extra = merged  # type: ignore[attr-defined]
        self._logger.handle(record)

    @staticmethod
    def generate_trace_id() -> str:
        """Short 12-char hex trace ID."""
        return uuid.uuid4().hex[:12]

    @property
    def context(self) -> LogContext:
        return self._context

    def __repr__(self) -> str:
        return f"StructuredLogger({self._name!r}, trace_id={self._context.trace_id!r})"


def setup_structured_logging(json_mode: Optional[bool] = None, level: str = "INFO") -> None:
    """
    Configure the root logger.

    Parameters
    ----------
    json_mode : bool or None
        If None, read ``AXIS_LOG_FORMAT`` (``"json"`` enables JSON mode).
    level : str
        Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    if json_mode is None:
        json_mode = os.getenv("AXIS_LOG_FORMAT", "").lower() == "json"

    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler()
    if json_mode:
        handler.setFormatter(StructuredFormatter(datefmt="%Y-%m-%dT%H:%M:%S"))
    else:
        handler.setFormatter(HumanFormatter())
    handler.addFilter(TraceIDFilter())
    root.addHandler(handler)

    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)
