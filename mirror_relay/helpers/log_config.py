"""
Mirror Relay Logging Configuration

Provides a simple logging configuration entry point, reusing the standard logging module.
Registered secrets (the bot token, webhook tokens) are masked before records are emitted.

Usage:
    from mirror_relay.helpers.log_config import configure_logging, get_logger, LogSubsystem

    # Initialize at application startup
    configure_logging(level="INFO", log_file="logs/debug.log")

    # Get subsystem logger
    log = get_logger(LogSubsystem.RELAY)
    log.info("Delivered message", extra={"destination": "..."})
"""

import logging
import logging.handlers
import os
import sys
import threading
import time
from contextlib import contextmanager
from enum import Enum
from typing import Any, Dict, Optional, Set


class LogSubsystem(str, Enum):
    """Log subsystem classification for Mirror Relay"""
    GATEWAY = "mirror.gateway"
    RELAY = "mirror.relay"
    FILTER = "mirror.filter"
    CONFIG = "mirror.config"
    SERVER = "mirror.server"


ROOT_LOGGER = "mirror"
REDACTED = "***"
ROTATE_BYTES = 10 * 1024 * 1024

# Global configuration state
_configured = False
_config_lock = threading.Lock()
_secrets: Set[str] = set()


def register_secret(value: Optional[str]) -> None:
    """Register a value that must never appear in log output"""
    if value:
        _secrets.add(value)


def mask_secrets(text: str) -> str:
    for secret in sorted(_secrets, key=len, reverse=True):
        text = text.replace(secret, REDACTED)
    return text


class RedactionFilter(logging.Filter):
    """
    Log filter that redacts registered secrets

    Secrets are registered with register_secret() and replaced by ***
    in the formatted message.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        """Apply redaction to log message"""
        if not _secrets:
            return True
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        masked = mask_secrets(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


class ContextAdapter(logging.LoggerAdapter):
    """
    Logger adapter that supports context injection

    Usage:
        log = get_logger(LogSubsystem.RELAY, {"channel_id": "123"})
        log.info("Relaying message", extra={"message_id": "456"})
    """

    def process(self, msg, kwargs):
        # Merge extra context
        extra = kwargs.get('extra', {})
        if self.extra:
            extra = {**self.extra, **extra}
        kwargs['extra'] = extra
        return msg, kwargs


def configure_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    error_log_file: Optional[str] = None,
    format_string: Optional[str] = None,
    enable_redaction: bool = True,
    enable_console: bool = True
) -> None:
    """
    Configure Mirror Relay logging system

    This function should be called once at application startup.
    Subsequent calls will be ignored.

    Args:
        level: Log level (DEBUG/INFO/WARNING/ERROR/CRITICAL)
        log_file: Optional log file path, rotated at 10MB
        error_log_file: Optional path receiving ERROR records only
        format_string: Custom format string (uses default if not provided)
        enable_redaction: Whether to mask registered secrets (default: True)
        enable_console: Whether to output to console (default: True)

    Example:
        >>> from mirror_relay.helpers.log_config import configure_logging
        >>> configure_logging(level="DEBUG", log_file="logs/debug.log")
    """
    global _configured

    with _config_lock:
        if _configured:
            return
        _configured = True

    fmt = format_string or "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
    formatter = logging.Formatter(fmt, datefmt="%Y-%m-%d %H:%M:%S")
    log_level = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(log_level)

    # Prevent propagation to root logger to avoid duplicate output
    root.propagate = False

    handlers = []

    if enable_console:
        console = logging.StreamHandler(sys.stdout)
        console.setLevel(log_level)
        handlers.append(console)

    if log_file:
        file_handler = _file_handler(root, log_file)
        if file_handler:
            file_handler.setLevel(log_level)
            handlers.append(file_handler)

    if error_log_file:
        error_handler = _file_handler(root, error_log_file)
        if error_handler:
            error_handler.setLevel(logging.ERROR)
            handlers.append(error_handler)

    # Filters on handlers also cover records propagated from child loggers
    redaction_filter = RedactionFilter() if enable_redaction else None
    for handler in handlers:
        handler.setFormatter(formatter)
        if redaction_filter:
            handler.addFilter(redaction_filter)
        root.addHandler(handler)

    root.info("Mirror Relay logging configured", extra={"level": level, "redaction": enable_redaction})


def _file_handler(root: logging.Logger, path: str) -> Optional[logging.Handler]:
    try:
        log_dir = os.path.dirname(path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        return logging.handlers.RotatingFileHandler(
            path, maxBytes=ROTATE_BYTES, backupCount=3, encoding="utf-8"
        )
    except OSError as e:
        root.warning(f"Failed to create log file handler for {path}: {e}")
        return None


def get_logger(subsystem: LogSubsystem, context: Optional[Dict[str, Any]] = None) -> logging.Logger:
    """
    Get a logger for a specific subsystem

    Args:
        subsystem: LogSubsystem enum value
        context: Optional context dict to attach to all log messages

    Returns:
        Configured Logger instance
    """
    logger = logging.getLogger(subsystem.value)

    if context:
        return ContextAdapter(logger, context)

    return logger


def set_subsystem_level(subsystem: LogSubsystem, level: str) -> None:
    """
    Set log level for a specific subsystem

    Example:
        >>> set_subsystem_level(LogSubsystem.GATEWAY, "WARNING")  # Hide heartbeat chatter
    """
    logger = logging.getLogger(subsystem.value)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))


@contextmanager
def log_duration(logger: logging.Logger, operation: str, level: int = logging.DEBUG):
    """
    Context manager to log operation duration

    Example:
        >>> log = get_logger(LogSubsystem.RELAY)
        >>> with log_duration(log, "webhook delivery"):
        ...     await client.execute(url, payload)
        # Logs: "webhook delivery completed in 123.45ms"
    """
    start = time.time()
    try:
        yield
    finally:
        duration_ms = (time.time() - start) * 1000
        logger.log(level, f"{operation} completed in {duration_ms:.2f}ms")


def is_configured() -> bool:
    """Check if logging has been configured"""
    return _configured


def reset_configuration() -> None:
    """
    Reset logging configuration (mainly for testing)

    WARNING: This removes all handlers from the mirror logger and forgets
    registered secrets. Only use in test environments.
    """
    global _configured
    _configured = False
    _secrets.clear()

    root = logging.getLogger(ROOT_LOGGER)
    root.propagate = True
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for filter_ in root.filters[:]:
        root.removeFilter(filter_)
