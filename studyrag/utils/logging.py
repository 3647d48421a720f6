"""Structured logging setup for StudyRAG using structlog.

A single shared processor chain feeds either a coloured console renderer
(development) or a JSON renderer (``APP_ENV=production`` or
``json_output=True``).  The stdlib root logger is routed through the same
chain so uvicorn, httpx and openai log lines share one format.

Ingestion runs bind ``session_id`` and ``document_id`` into structlog's
context variables via :func:`bind_log_context`, so every log line emitted
during a run carries them.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> structlog.BoundLogger:
    """Configure structlog with environment-appropriate rendering.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        json_output: Force JSON output. When False, JSON is used only when
                     ``APP_ENV`` is ``production``.

    Returns:
        A configured structlog BoundLogger.
    """
    # Renderer choice: production gets one JSON object per line for the log
    # shipper; everything else gets the readable console layout.
    app_env = os.environ.get("APP_ENV", "development")
    use_json = json_output or app_env == "production"

    # Processors shared by both renderers.  merge_contextvars must run first
    # so the session_id/document_id bound by bind_log_context reach every
    # later processor.
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,  # session_id, document_id
        structlog.processors.add_log_level,        # "level" key
        structlog.processors.StackInfoRenderer(),  # stack_info=True support
        structlog.dev.set_exc_info,                # exc_info on .exception()
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    # Colours only when a terminal is attached; piped output stays free of
    # ANSI codes.
    if use_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[*shared_processors, renderer],
        # Calls below log_level return before any processor runs, so the
        # per-item debug lines in the pipeline cost nothing at INFO.
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # uvicorn, httpx and the openai client log through stdlib logging.  Give
    # the root logger a formatter that runs the same chain so their lines
    # match ours.
    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *shared_processors,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()  # reconfiguring must not stack handlers
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level.upper())

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a named structlog logger, configuring defaults on first use."""
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(logger_name=name)


@contextmanager
def bind_log_context(**values: str) -> Iterator[None]:
    """Bind *values* into the structlog context for the enclosed block."""
    tokens = structlog.contextvars.bind_contextvars(**values)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)
