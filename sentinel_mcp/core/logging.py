"""
Shared logging configuration.

This module centralizes logging setup so that all components
(core, integrations, tools, MCP server) log in a consistent way.

stdout is reserved for the MCP protocol, so the console handler writes to
stderr.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

from .config import LoggingConfig


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s [%(message)s]"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(config: Optional[LoggingConfig] = None) -> None:
    """
    Configure application-wide logging.

    This function is idempotent: calling it multiple times will not
    re-add handlers if they already exist.
    """

    if config is None:
        config = LoggingConfig()

    root_logger = logging.getLogger()

    # Avoid configuring logging twice.
    if getattr(root_logger, "_s1mcp_logging_configured", False):
        return

    log_dir = config.log_dir
    os.makedirs(log_dir, exist_ok=True)

    root_logger.setLevel(config.log_level.upper())

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    # Error log
    error_handler = logging.FileHandler(os.path.join(log_dir, "error.log"))
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)

    # Warning log
    warning_handler = logging.FileHandler(os.path.join(log_dir, "warning.log"))
    warning_handler.setLevel(logging.WARNING)
    warning_handler.setFormatter(formatter)

    # Debug log
    debug_handler = logging.FileHandler(os.path.join(log_dir, "debug.log"))
    debug_handler.setLevel(logging.DEBUG)
    debug_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(config.log_level.upper())
    console_handler.setFormatter(formatter)

    root_logger.addHandler(error_handler)
    root_logger.addHandler(warning_handler)
    root_logger.addHandler(debug_handler)
    root_logger.addHandler(console_handler)

    # urllib3 logs every connection at DEBUG; the HTTP client logs its own requests.
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    root_logger._s1mcp_logging_configured = True  # type: ignore[attr-defined]


def get_logger(name: str) -> logging.Logger:
    """
    Convenience helper to get a logger for a given module or subsystem.
    """

    return logging.getLogger(name)
