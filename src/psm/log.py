"""structlog setup for psm."""

import logging
import sys

import structlog


def _stderr_logger(*args) -> structlog.PrintLogger:
    # resolve sys.stderr per logger, it may be swapped after configuration
    return structlog.PrintLogger(sys.stderr)


def configure_logging(verbose: bool = False) -> None:
    """Route psm diagnostics to stderr, keeping stdout for the report."""
    level = logging.DEBUG if verbose else logging.WARNING
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False,
    )
