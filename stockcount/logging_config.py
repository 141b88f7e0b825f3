"""
STOCKCOUNT Logging Configuration

Centralized logging setup for the voice inventory service:
- Console output to stdout
- Optional rotating file handler with size limits
- Optional single-line JSON records for log shippers
- Per-service log level configuration

Usage:
    from stockcount.logging_config import setup_logging, get_logger

    setup_logging(log_level="INFO", log_file="stockcount.log")

    logger = get_logger("pipeline")
    logger.info("Session opened")
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10MB
DEFAULT_BACKUP_COUNT = 5

ROOT_LOGGER_NAME = "stockcount"

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# ANSI colors keyed by level, console only
_LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[41m",
}
_RESET = "\033[0m"


class JsonFormatter(logging.Formatter):
    """Format records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record, DEFAULT_DATE_FORMAT),
            "logger": record.name,
            "level": record.levelname,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload)


class ColorFormatter(logging.Formatter):
    """Prefix the level name with an ANSI color."""

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        color = _LEVEL_COLORS.get(record.levelno)
        if not color:
            return text
        return text.replace(record.levelname, f"{color}{record.levelname}{_RESET}", 1)


def setup_logging(
    log_level: str = DEFAULT_LOG_LEVEL,
    log_file: Optional[str | Path] = None,
    json_format: bool = False,
    enable_color: bool = True,
) -> None:
    """Configure logging for the STOCKCOUNT application.

    Sets up the package root logger with console and optional file handlers.
    Should be called once at application startup.

    Args:
        log_level: Default logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file. If provided, enables file logging
                  with rotation.
        json_format: If True, use structured JSON format for logs.
        enable_color: If True, color the level name when stdout is a TTY.
    """
    level = LOG_LEVELS.get(log_level.upper(), logging.INFO)

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    if json_format:
        console_formatter: logging.Formatter = JsonFormatter()
    elif enable_color and sys.stdout.isatty():
        console_formatter = ColorFormatter(DEFAULT_LOG_FORMAT, DEFAULT_DATE_FORMAT)
    else:
        console_formatter = logging.Formatter(DEFAULT_LOG_FORMAT, DEFAULT_DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(console_formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        from logging.handlers import RotatingFileHandler

        file_path = Path(log_file)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            file_path,
            maxBytes=DEFAULT_MAX_BYTES,
            backupCount=DEFAULT_BACKUP_COUNT,
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(
            JsonFormatter() if json_format
            else logging.Formatter(DEFAULT_LOG_FORMAT, DEFAULT_DATE_FORMAT)
        )
        root_logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the stockcount namespace.

    Args:
        name: Logger name (typically a component name or __name__)

    Returns:
        Configured logger instance
    """
    if not name.startswith(ROOT_LOGGER_NAME):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def set_service_level(service_name: str, level: str) -> None:
    """Set log level for a single component.

    Example:
        set_service_level("extractor", "DEBUG")
        set_service_level("server", "WARNING")
    """
    logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{service_name}")
    logger.setLevel(LOG_LEVELS.get(level.upper(), logging.INFO))
