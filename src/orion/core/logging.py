"""Structured logging for Orion: session-aware, configurable per deployment.

Uses structlog's ProcessorFormatter to transparently upgrade all existing
``logging.getLogger(__name__)`` call sites. Zero changes needed at call sites.

Two output formats:
- ``text``: Colored, human-readable console output (dev default)
- ``json``: Machine-parseable JSON lines (production / log aggregation)

The active chat session id and OTel trace context are injected automatically
via processors that read from a ContextVar and the current OTel span.
Structured extras are scrubbed with the tool-argument redaction rules before
rendering.

Log directory layout (when ``log_root`` is set)::

    logs/
      orion/            # Application logs (JSON)
        orion.log
      uvicorn/          # HTTP server logs (JSON)
        orion.log
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Mapping
from contextvars import ContextVar
from pathlib import Path

import structlog
from opentelemetry import trace

from orion.core.redaction import REDACTION_MARKER, is_sensitive_key, redact_args

# ---------------------------------------------------------------------------
# Session context (asyncio-safe via ContextVar)
# ---------------------------------------------------------------------------

_session_context: ContextVar[str | None] = ContextVar("orion_session_id", default=None)


def set_session_context(session_id: str | None) -> None:
    """Set the chat session id for the current async context."""
    _session_context.set(session_id)


def get_session_context() -> str | None:
    """Get the chat session id for the current async context."""
    return _session_context.get()


# ---------------------------------------------------------------------------
# Structlog processors
# ---------------------------------------------------------------------------


def add_session_context(
    logger: logging.Logger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: dict,
) -> dict:
    """Inject ``session_id`` from the ContextVar into the event dict."""
    event_dict["session_id"] = _session_context.get()
    return event_dict


def redact_sensitive_fields(
    logger: logging.Logger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: dict,
) -> dict:
    """Mask credential-bearing fields passed as ``extra=``.

    Uses the same key rules as tool-argument redaction, one level deep, so
    ``logger.info("...", extra={"args": {"token": ...}})`` never writes the
    token.
    """
    for key, value in list(event_dict.items()):
        if is_sensitive_key(key):
            event_dict[key] = REDACTION_MARKER
        elif isinstance(value, Mapping):
            event_dict[key] = redact_args(value)
    return event_dict


def add_otel_context(
    logger: logging.Logger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: dict,
) -> dict:
    """Inject ``trace_id`` and ``span_id`` from the current OTel span."""
    span = trace.get_current_span()
    ctx = span.get_span_context()
    if ctx and ctx.trace_id:
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    else:
        event_dict["trace_id"] = "0" * 32
        event_dict["span_id"] = "0" * 16
    return event_dict


# ---------------------------------------------------------------------------
# Noise suppression
# ---------------------------------------------------------------------------

_NOISE_LOGGERS = (
    "uvicorn.access",
    "uvicorn.error",
    "httpx",
    "httpcore",
)

_DIR_APP = "orion"
_DIR_UVICORN = "uvicorn"


def _build_processors(
    time_fmt: str,
) -> list[structlog.types.Processor]:
    """Build the pre-chain processor list with the given timestamp format."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt=time_fmt),
        add_session_context,
        add_otel_context,
        structlog.stdlib.ExtraAdder(),
        redact_sensitive_fields,
    ]


def _make_file_handler(path: Path, processors: list) -> logging.FileHandler:
    """Create a JSON file handler at *path*."""
    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.JSONRenderer(),
        ],
        foreign_pre_chain=processors,
    )
    handler = logging.FileHandler(path)
    handler.setFormatter(formatter)
    handler.setLevel(logging.DEBUG)
    return handler


def configure_logging(
    level: str = "INFO",
    fmt: str = "text",
    log_root: Path | str | None = None,
    name: str = "orion",
) -> None:
    """Configure structured logging for the process.

    Parameters
    ----------
    level:
        Root log level (e.g. "DEBUG", "INFO", "WARNING").
    fmt:
        Output format, ``"text"`` for colored console, ``"json"`` for JSON lines.
    log_root:
        Root directory for structured log files.  When set, creates::

            {log_root}/orion/{name}.log     # application logs
            {log_root}/uvicorn/{name}.log   # HTTP transport logs

    name:
        Deployment name used for file naming.
    """
    if fmt == "json":
        console_processors = _build_processors(time_fmt="iso")
        renderer = structlog.processors.JSONRenderer()
    else:
        console_processors = _build_processors(time_fmt="%H:%M:%S")
        renderer = structlog.dev.ConsoleRenderer()

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=console_processors,
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)

    root = logging.getLogger()
    # Remove existing handlers to avoid duplicate output on reconfiguration
    root.handlers.clear()
    root.addHandler(console_handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for noise in _NOISE_LOGGERS:
        logging.getLogger(noise).setLevel(logging.WARNING)

    if log_root is not None:
        log_root = Path(log_root)
        file_processors = _build_processors(time_fmt="iso")

        for subdir in (_DIR_APP, _DIR_UVICORN):
            (log_root / subdir).mkdir(parents=True, exist_ok=True)

        root.addHandler(_make_file_handler(log_root / _DIR_APP / f"{name}.log", file_processors))

        uvicorn_handler = _make_file_handler(
            log_root / _DIR_UVICORN / f"{name}.log",
            file_processors,
        )
        for noise in _NOISE_LOGGERS:
            logging.getLogger(noise).addHandler(uvicorn_handler)
