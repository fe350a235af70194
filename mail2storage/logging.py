"""Structured logging setup using structlog."""

from __future__ import annotations

import logging
import sys
from typing import TextIO

import structlog

_VERBOSITY_LEVELS = ["WARNING", "INFO", "DEBUG"]


def level_for_verbosity(verbose: int, *, quiet: bool = False, base: str = "WARNING") -> str:
    """Translate ``-v`` counts and ``-q`` into a log level name.

    Each ``-v`` moves one step from *base* towards ``DEBUG``; ``-q`` wins
    over any ``-v`` and only lets critical records through.
    """
    if quiet:
        return "CRITICAL"
    base = base.upper()
    if base not in _VERBOSITY_LEVELS:
        if not verbose:
            return base
        base = "WARNING"
    start = _VERBOSITY_LEVELS.index(base)
    return _VERBOSITY_LEVELS[min(start + verbose, len(_VERBOSITY_LEVELS) - 1)]


def setup_logging(
    *,
    json: bool = False,
    level: str = "WARNING",
    stream: TextIO | None = None,
) -> None:
    """Configure structlog for the pipeline process.

    Parameters
    ----------
    json:
        If *True*, output JSON lines; otherwise use the human-friendly
        console renderer (the default for an interactive filter).
    level:
        Root log level name (e.g. ``"DEBUG"``, ``"INFO"``).
    stream:
        Destination stream, ``sys.stderr`` by default.  Standard output is
        reserved for the echoed message.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

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
    )

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())
