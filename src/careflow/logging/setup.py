"""Logging setup and configuration."""

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from careflow.logging.formatters import ConsoleFormatter, JSONFormatter

DEFAULT_ROTATION_WHEN = "midnight"
DEFAULT_BACKUP_COUNT = 7

# Noisy loggers to suppress
NOISY_LOGGERS = [
    "aiohttp",
    "aiohttp.access",
    "aiohttp.client",
    "asyncio",
    "urllib3",
]


def _parse_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    parsed = logging.getLevelName(str(level).upper())
    if not isinstance(parsed, int):
        raise ValueError(f"Unknown log level: {level}")
    return parsed


def setup_logging(
    level: int | str = logging.INFO,
    log_format: str = "console",
    log_file: Path | str | None = None,
    suppress_noisy: bool = True,
) -> logging.Logger:
    """
    Configure root logging for the client.

    Console output uses ConsoleFormatter or JSONFormatter depending on
    log_format. When log_file is given, a midnight-rotating file handler with
    JSON output is added as well.

    Args:
        level: Minimum level for console output ("INFO", logging.DEBUG, ...)
        log_format: "console" or "json"
        log_file: Optional path for JSON file logs
        suppress_noisy: Quiet down aiohttp/asyncio loggers

    Returns:
        The root logger
    """
    if log_format not in ("console", "json"):
        raise ValueError(f"Unknown log format: {log_format}")

    console_level = _parse_level(level)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(
        JSONFormatter() if log_format == "json" else ConsoleFormatter()
    )
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            log_path,
            when=DEFAULT_ROTATION_WHEN,
            backupCount=DEFAULT_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    if suppress_noisy:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    return root_logger
