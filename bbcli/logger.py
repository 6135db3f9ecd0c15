"""
Logging module for bbcli.

Provides a simple interface to configure and retrieve loggers using Python's
built-in logging module. Credentials registered with ``register_secret`` are
masked in every record that passes through the configured handlers.
"""

from __future__ import annotations

import logging
import os
import sys
import threading
from logging.handlers import RotatingFileHandler

REDACTED = "<REDACTED>"

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


# ANSI color codes
class Colors:
    RESET = "\033[0m"
    RED = "\033[31m"
    YELLOW = "\033[33m"
    CYAN = "\033[36m"
    GRAY = "\033[90m"


class ColoredFormatter(logging.Formatter):
    """Formatter that colors records by log level."""

    LEVEL_COLORS = {
        logging.DEBUG: Colors.GRAY,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = self.LEVEL_COLORS.get(record.levelno)
        if color:
            return f"{color}{message}{Colors.RESET}"
        return message


class MaskingFilter(logging.Filter):
    """Filter that masks registered secrets in log records.

    Credentials are added as they are loaded from the auth config, so any
    accidental logging of a token or a token-bearing URL shows <REDACTED>
    instead of the value.
    """

    def __init__(self) -> None:
        super().__init__()
        self._secrets: set[str] = set()
        self._lock = threading.Lock()

    def add_secret(self, secret: str) -> None:
        """Register a value to be masked. Empty values are ignored."""
        if not secret:
            return
        with self._lock:
            self._secrets.add(secret)

    def filter(self, record: logging.LogRecord) -> bool:
        """Apply masking to the log record.

        Returns:
            True to allow all records through (masking is applied in-place).
        """
        if not self._secrets:
            return True

        if record.msg:
            record.msg = self._mask_value(str(record.msg))

        if record.args:
            if isinstance(record.args, dict):
                record.args = {
                    k: self._mask_value(v) if isinstance(v, str) else v
                    for k, v in record.args.items()
                }
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    self._mask_value(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )

        return True

    def _mask_value(self, value: str) -> str:
        with self._lock:
            secrets = sorted(self._secrets, key=len, reverse=True)
        for secret in secrets:
            value = value.replace(secret, REDACTED)
        return value


# Shared across all handlers so secrets registered after setup are still masked
_masking_filter = MaskingFilter()


def register_secret(secret: str) -> None:
    """Mask a credential in all subsequent log output."""
    _masking_filter.add_secret(secret)


def get_masking_filter() -> MaskingFilter:
    """Return the process-wide masking filter."""
    return _masking_filter


def setup_logging(
    log_file: str | None = None,
    log_size: int = 5 * 1024 * 1024,
    log_backups: int = 3,
    colorize: bool | None = None,
) -> None:
    """
    Configure the root logger with a standard format and level.

    The log level is read from the LOG_LEVEL environment variable. A CLI
    should stay quiet by default, so the default level is WARNING.

    Args:
        log_file: Optional path to a log file. Parent directories are created.
        log_size: Max size in bytes before rotation. Default: 5MB
        log_backups: Number of backup files to keep. Default: 3
        colorize: Force or disable ANSI colors on stderr. Defaults to
                  whether stderr is a terminal.
    """
    log_level_str = os.getenv("LOG_LEVEL", "WARNING").upper()
    log_level = getattr(logging, log_level_str, logging.WARNING)

    if colorize is None:
        colorize = sys.stderr.isatty()

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove any existing handlers
    root_logger.handlers.clear()

    formatter: logging.Formatter = (
        ColoredFormatter(LOG_FORMAT) if colorize else logging.Formatter(LOG_FORMAT)
    )
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(log_level)
    stderr_handler.setFormatter(formatter)
    stderr_handler.addFilter(_masking_filter)
    root_logger.addHandler(stderr_handler)

    if log_file:
        try:
            log_dir = os.path.dirname(log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)

            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=log_size,
                backupCount=log_backups,
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            file_handler.addFilter(_masking_filter)
            root_logger.addHandler(file_handler)
        except OSError as e:
            print(f"[logger] Failed to create file handler: {e}", file=sys.stderr)


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger with the specified name.

    Args:
        name: The name for the logger, typically __name__ of the calling module

    Returns:
        A configured Logger instance
    """
    return logging.getLogger(name)


def is_debug_mode() -> bool:
    """Check if logging is set to DEBUG level."""
    return logging.getLogger().level <= logging.DEBUG
