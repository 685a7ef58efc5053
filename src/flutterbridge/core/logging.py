"""
Structured logging configuration for FlutterBridge.

Every module logs through structlog::

    import structlog
    logger = structlog.get_logger()

    logger.info("flutter_process_started", session_id=sid, pid=pid)

Events are snake_case names with key-value context.  Session-scoped work
binds ``session_id`` so that output from a process manager, its log reader
task and the teardown path can be correlated.

Logs always go to stderr.  The MCP transport owns stdout when the server
is embedded in a stdio host, so nothing here may write there.
"""

from __future__ import annotations

import logging
import sys

import structlog

# Third-party loggers that are too chatty at INFO
_QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "asyncio")


def configure_logging(
    *,
    level: str = "INFO",
    json_output: bool = False,
) -> None:
    """
    Configure structlog + stdlib logging for the process.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR).
        json_output: Emit JSON lines instead of coloured console output.

    Safe to call more than once: the stderr handler is installed only once,
    while the level is re-applied on every call.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    root = logging.getLogger()
    existing = [
        h
        for h in root.handlers
        if isinstance(h, logging.StreamHandler)
        and isinstance(getattr(h, "formatter", None), structlog.stdlib.ProcessorFormatter)
    ]
    if existing:
        # Renderer may have changed (text <-> json)
        for h in existing:
            h.setFormatter(formatter)
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    root.setLevel(log_level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
