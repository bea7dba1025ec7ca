# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
structlog setup for the command line.

Library modules only call structlog.get_logger(); the CLI decides how
events are rendered.
"""

import logging
import sys

import structlog


def configure_logging(verbose: bool = False, json: bool = False) -> None:
    """
    Configure structlog for console (or JSON lines) output on stderr.

    Args:
        verbose: Include debug events
        json: Render events as JSON, one per line (for log collectors)
    """
    level = logging.DEBUG if verbose else logging.INFO
    renderer = (
        structlog.processors.JSONRenderer()
        if json
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
