"""
Structured logging module.

Provides JSON/console logging with request correlation IDs.
"""

from careflow.logging.context import (
    clear_log_context,
    get_log_context,
    log_context,
)
from careflow.logging.formatters import ConsoleFormatter, JSONFormatter
from careflow.logging.setup import setup_logging
from careflow.logging.utilities import log_exception, log_with_context

__all__ = [
    # Setup
    "setup_logging",
    # Formatters
    "JSONFormatter",
    "ConsoleFormatter",
    # Context
    "get_log_context",
    "clear_log_context",
    "log_context",
    # Utilities
    "log_with_context",
    "log_exception",
]
