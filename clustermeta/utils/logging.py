"""
Structured logging infrastructure using structlog.

Every module asks for its logger through get_logger(__name__) and logs
events with key/value context. configure_logging() wires structlog on top
of the standard library logging module:
- JSON rendering for machine consumption
- Console rendering for interactive use

Values bound with bind_context() (the ZooKeeper connect string, the CLI
command) are merged into every entry logged from the same context.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Stamp every entry with the application name."""
    event_dict["app"] = "clustermeta"
    return event_dict


def _build_handler(log_output: str) -> logging.Handler:
    if log_output == "stdout":
        return logging.StreamHandler(sys.stdout)
    if log_output == "stderr":
        return logging.StreamHandler(sys.stderr)
    return logging.FileHandler(log_output, encoding="utf-8")


def configure_logging(
    log_level: str = "INFO",
    log_format: str = "console",
    log_output: str = "stderr",
) -> None:
    """
    Configure structured logging for clustermeta.

    Safe to call more than once; the latest call closes and replaces
    earlier handlers, including any log file they hold open.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: "json" or "console"
        log_output: "stdout", "stderr" or a file path to append to
    """
    logging.basicConfig(
        format="%(message)s",
        handlers=[_build_handler(log_output)],
        level=getattr(logging, log_level.upper()),
        force=True,
    )

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_app_context,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if log_format == "json":
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        # colours only make sense on a terminal stream
        processors.append(structlog.dev.ConsoleRenderer(colors=log_output == "stderr"))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_context(**values: Any) -> None:
    """Attach key/value pairs to every entry logged from the current context."""
    structlog.contextvars.bind_contextvars(**values)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return the logger for a module, typically get_logger(__name__)."""
    return structlog.get_logger(name)
