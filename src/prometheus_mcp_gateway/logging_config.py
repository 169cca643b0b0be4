#!/usr/bin/env python
"""Structured logging setup for the Prometheus MCP Gateway."""

import logging
import os
import sys

import structlog

LOG_LEVEL_ENV = "PROMETHEUS_MCP_LOG_LEVEL"


def setup_logging(level=None):
    """Configure structlog to emit JSON lines on stderr.

    stdout is reserved for the stdio MCP transport, so nothing may be logged there.
    """
    level_name = str(level or os.environ.get(LOG_LEVEL_ENV, "INFO")).upper()
    log_level = logging.getLevelName(level_name)
    if not isinstance(log_level, int):
        log_level = logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
    return get_logger()


def get_logger(name=None):
    """Return a structlog logger, optionally named after the calling module."""
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()
