"""
Structured logging with trace context propagation.

Every run sets ``thread_id`` and ``graph_id`` once; the executor adds
``node_id`` around each node. Plain ``logger.info(...)`` calls anywhere below
pick the context up from a ContextVar, which follows asyncio tasks, so
concurrent runs and delegated sub-agents keep their own fields.

    configure_logging(level="DEBUG", format="human")

    with trace_scope(thread_id="t-1", graph_id="rag-graph"):
        await executor.invoke(...)   # every record carries thread/graph ids
"""

import json
import logging
import os
import re
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

import litellm

trace_context: ContextVar[dict[str, Any] | None] = ContextVar("trace_context", default=None)

ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-9;]*m")

# Record attributes copied into JSON output when passed via ``extra=``
_EXTRA_FIELDS = ("event", "latency_ms", "tokens_used", "model", "tool")


def strip_ansi_codes(text: str) -> str:
    return ANSI_ESCAPE_PATTERN.sub("", text)


class StructuredFormatter(logging.Formatter):
    """JSON lines: timestamp, level, logger, message, trace context, extras."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": strip_ansi_codes(record.getMessage()),
        }
        log_entry.update(trace_context.get() or {})

        for name in _EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = value

        if record.exc_info:
            log_entry["exception"] = strip_ansi_codes(self.formatException(record.exc_info))

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Colorized single-line logs prefixed with the thread/graph/node in scope."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        context = trace_context.get() or {}

        prefix_parts = []
        if context.get("thread_id"):
            prefix_parts.append(f"thread:{str(context['thread_id'])[-8:]}")
        if context.get("graph_id"):
            prefix_parts.append(f"graph:{context['graph_id']}")
        if context.get("node_id"):
            prefix_parts.append(f"node:{context['node_id']}")
        context_prefix = f"[{' | '.join(prefix_parts)}] " if prefix_parts else ""

        color = self.COLORS.get(record.levelname, "")
        level = f"{record.levelname:<8}"
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return f"{color}[{level}]{self.RESET} {context_prefix}{message}"


def configure_logging(
    level: str = "INFO",
    format: str = "auto",  # "json", "human", or "auto"
) -> None:
    """
    Configure logging for the application. Call once at startup.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: "json", "human", or "auto" (JSON when LOG_FORMAT=json or
            ENV=production, human-readable otherwise)
    """
    if format == "auto":
        log_format_env = os.getenv("LOG_FORMAT", "").lower()
        env = os.getenv("ENV", "development").lower()
        format = "json" if log_format_env == "json" or env == "production" else "human"

    if format == "json":
        formatter: logging.Formatter = StructuredFormatter()
        os.environ["NO_COLOR"] = "1"
        litellm.suppress_debug_info = True
    else:
        formatter = HumanReadableFormatter()

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())

    # Route chatty client libraries through the root handler
    for logger_name in ("LiteLLM", "httpx", "httpcore", "openai"):
        third_party = logging.getLogger(logger_name)
        third_party.handlers.clear()
        third_party.propagate = True


def set_trace_context(**kwargs: Any) -> None:
    """Merge fields into the current trace context."""
    current = trace_context.get() or {}
    trace_context.set({**current, **kwargs})


def get_trace_context() -> dict[str, Any]:
    return dict(trace_context.get() or {})


def clear_trace_context() -> None:
    trace_context.set(None)


@contextmanager
def trace_scope(**kwargs: Any) -> Iterator[None]:
    """Set trace fields for the duration of a block, restoring the outer ones after."""
    previous = trace_context.get()
    trace_context.set({**(previous or {}), **kwargs})
    try:
        yield
    finally:
        trace_context.set(previous)
