"""Utilities package for the device management server"""

from utils.logging import (
    get_logger,
    setup_logging,
    set_module_level,
    silence_module,
    log_startup,
    log_shutdown,
    log_error_with_context,
    log_config,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "set_module_level",
    "silence_module",
    "log_startup",
    "log_shutdown",
    "log_error_with_context",
    "log_config",
]
