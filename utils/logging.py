"""Centralized logging for the device management server using structlog

Provides structured logging with snake_case event names and keyword context.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import structlog


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    colored: bool = True,
    json_logs: bool = False
):
    """Setup centralized structlog configuration

    Args:
        level: Logging level string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for logging output
        colored: Enable colored console output
        json_logs: Output JSON format instead of console format
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_logs:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ]
    else:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=colored)
        ]

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger_factory = structlog.PrintLoggerFactory(file=open(log_file, "a"))
    else:
        logger_factory = structlog.PrintLoggerFactory(file=sys.stdout)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level.upper(), logging.INFO)),
        context_class=dict,
        logger_factory=logger_factory,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str):
    """Get a structlog logger with the specified name

    Args:
        name: Logger name (usually __name__ of the module)

    Returns:
        Configured structlog logger instance
    """
    return structlog.get_logger(name)


def set_module_level(module_name: str, level: str):
    """Set the stdlib logging level for a third-party module

    Dependencies such as paho log through the standard library, so their
    verbosity is controlled there rather than through structlog.
    """
    logging.getLogger(module_name).setLevel(level.upper())


def silence_module(module_name: str):
    """Silence all logging from a specific module"""
    set_module_level(module_name, "CRITICAL")


def log_startup(logger, component: str, **details):
    """Log component startup with structured context"""
    logger.info("starting", component=component, **details)


def log_shutdown(logger, component: str):
    """Log component shutdown"""
    logger.info("stopping", component=component)


def log_error_with_context(logger, error: Exception, context: str = "", **extra):
    """Log error with structured context

    Args:
        logger: Structlog logger instance
        error: Exception object
        context: Context description
        **extra: Additional context as keyword arguments
    """
    logger.error(
        "error",
        error_type=type(error).__name__,
        error_message=str(error),
        context=context,
        **extra
    )


def log_config(logger, config: dict):
    """Log configuration settings with structured context"""
    logger.info("configuration", **config)
