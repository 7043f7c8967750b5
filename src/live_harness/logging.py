"""
Structured logging setup for live-harness.

Configures structlog for JSON or console structured logging. Every log
line includes timestamp, level, service name, and event. Per-stream
context (video_id, pid) is bound where the stream is started.
"""

from __future__ import annotations

import logging

import structlog

SERVICE_NAME = "live-harness"


def _add_service(
    _logger: object, _method: str, event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def configure_logging(level: str = "INFO", *, debug: bool = False, json: bool = False) -> None:
    """Install the structlog processor chain.

    Args:
        level: Minimum level name. Forced to ``DEBUG`` when *debug* is set.
        debug: Whether encoder stderr and encoder errors should be visible.
        json: Render JSON lines instead of the colourless console format.
    """
    if debug:
        level = "DEBUG"
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level!r}")

    renderer: structlog.types.Processor
    if json:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _add_service,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        cache_logger_on_first_use=False,
    )
