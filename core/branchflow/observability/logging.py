"""
Log formatting for flow runs, with run/node correlation.

Every unit of work runs in its own asyncio task, and tasks copy the current
``contextvars`` context when they are created. The executor stores ``run_id``
before it creates the units and each unit adds its own ``node_id``, so a
plain ``logger.info(...)`` anywhere below the executor is tagged with both.

    FlowExecutor.run()        set_trace_context(run_id=...)
      └─ unit task per node   set_trace_context(node_id=...)
           └─ NodeExecutor / BranchEvaluator / HTTP clients log normally

Two renderings are available: one JSON object per line for log shipping, and
a colored single-line form for terminals.
"""

import json
import logging
import os
import re
from contextvars import ContextVar, Token
from datetime import UTC, datetime
from typing import Any

trace_context: ContextVar[dict[str, Any] | None] = ContextVar("trace_context", default=None)

_ANSI = re.compile(r"\x1b\[[0-9;]*m")

# LogRecord attributes (passed via ``extra=``) copied into structured output
RECORD_FIELDS = ("node_id", "event", "latency_ms", "status_code")


def strip_ansi_codes(text: str) -> str:
    return _ANSI.sub("", text)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: base fields, trace context, then extras."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": strip_ansi_codes(record.getMessage()),
            **(trace_context.get() or {}),
        }
        for name in RECORD_FIELDS:
            value = getattr(record, name, None)
            if value is None:
                continue
            entry[name] = strip_ansi_codes(value) if isinstance(value, str) else value

        if record.exc_info:
            entry["exception"] = strip_ansi_codes(self.formatException(record.exc_info))
        return json.dumps(entry)


class HumanReadableFormatter(logging.Formatter):
    """``[LEVEL   ] [run:1a2b3c4d | node:summary] message [event]``"""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def _prefix(self, record: logging.LogRecord) -> str:
        context = trace_context.get() or {}
        parts = []
        run_id = context.get("run_id")
        if run_id:
            parts.append(f"run:{run_id[:8]}")
        node_id = getattr(record, "node_id", None) or context.get("node_id")
        if node_id:
            parts.append(f"node:{node_id}")
        return f"[{' | '.join(parts)}] " if parts else ""

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, "")
        line = f"{color}[{record.levelname:<8}]{self.RESET} {self._prefix(record)}"
        line += record.getMessage()

        event = getattr(record, "event", None)
        if event is not None:
            line += f" [{event}]"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _resolve_format(format: str) -> str:
    if format != "auto":
        return format
    requested = os.getenv("LOG_FORMAT", "").lower()
    if requested in ("json", "human"):
        return requested
    return "json" if os.getenv("ENV", "").lower() == "production" else "human"


def configure_logging(level: str = "INFO", format: str = "auto") -> None:
    """
    Install a single root handler using one of the formatters above.

    Call once at startup; the CLI does this from its global options.

    Args:
        level: Root log level name, case-insensitive
        format: "json", "human", or "auto" (JSON when LOG_FORMAT=json or
            ENV=production, otherwise human)
    """
    format = _resolve_format(format)
    formatter: logging.Formatter
    if format == "json":
        formatter = StructuredFormatter()
        # Keep escape codes out of JSON lines produced by other libraries
        os.environ["NO_COLOR"] = "1"
        os.environ["FORCE_COLOR"] = "0"
    else:
        formatter = HumanReadableFormatter()

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())

    # httpx/httpcore must flow through the root handler so request logs are tagged too
    for name in ("httpx", "httpcore"):
        library_logger = logging.getLogger(name)
        library_logger.handlers.clear()
        library_logger.propagate = True


def set_trace_context(**kwargs: Any) -> Token:
    """Merge ``kwargs`` into the trace context of the current task.

    Returns the token that restores the previous context via reset_trace_context().
    """
    return trace_context.set({**(trace_context.get() or {}), **kwargs})


def get_trace_context() -> dict[str, Any]:
    """Copy of the current trace context ({} when nothing is set)."""
    return dict(trace_context.get() or {})


def clear_trace_context() -> None:
    trace_context.set(None)


def reset_trace_context(token: Token) -> None:
    trace_context.reset(token)
