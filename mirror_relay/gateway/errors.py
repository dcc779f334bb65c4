"""
Mirror Relay Error Handling Module

File: mirror_relay/gateway/errors.py
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

logger = logging.getLogger("mirror.errors")


class MirrorError(Exception):
    """Base class for relay errors"""


class ConfigError(MirrorError):
    """Configuration is unusable (missing token, bad file)"""


class ProtocolError(MirrorError):
    """Gateway frame could not be decoded"""


class InvalidSessionError(MirrorError):
    """Gateway invalidated the session and it cannot be resumed"""


class DestinationError(MirrorError):
    """A destination webhook is unusable or a call to it failed"""

    def __init__(self, message: str, url: str = "", status: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status = status


class DeliveryError(DestinationError):
    """Executing the webhook failed"""


class ProfileLookupError(DestinationError):
    """Fetching the webhook's own profile failed"""


class ErrorType(Enum):
    """Error types"""
    CONNECTION = "connection"
    SESSION_INVALID = "session_invalid"
    CONFIG = "config"
    DESTINATION_URL = "destination_url"
    DELIVERY = "delivery"
    LOOKUP = "lookup"
    TIMEOUT = "timeout"
    INTERNAL = "internal"


@dataclass
class ErrorPolicy:
    """How an error type is reported"""
    log_level: str
    recoverable: bool = True
    description: str = ""


ERROR_POLICIES: Dict[ErrorType, ErrorPolicy] = {
    ErrorType.CONNECTION: ErrorPolicy(
        log_level="warning",
        description="gateway connection lost, resuming"
    ),
    ErrorType.SESSION_INVALID: ErrorPolicy(
        log_level="critical",
        recoverable=False,
        description="session invalidated by gateway"
    ),
    ErrorType.CONFIG: ErrorPolicy(
        log_level="error",
        description="configuration problem"
    ),
    ErrorType.DESTINATION_URL: ErrorPolicy(
        log_level="error",
        description="destination URL not recognized"
    ),
    ErrorType.DELIVERY: ErrorPolicy(
        log_level="error",
        description="webhook delivery failed"
    ),
    ErrorType.LOOKUP: ErrorPolicy(
        log_level="error",
        description="webhook profile lookup failed"
    ),
    ErrorType.TIMEOUT: ErrorPolicy(
        log_level="warning",
        description="request timed out"
    ),
    ErrorType.INTERNAL: ErrorPolicy(
        log_level="error",
        description="unexpected error"
    ),
}


class ErrorHandler:
    """Error handler"""

    def classify_error(self, error: BaseException) -> ErrorType:
        """Classify exception to error type"""
        if isinstance(error, InvalidSessionError):
            return ErrorType.SESSION_INVALID
        elif isinstance(error, ConfigError):
            return ErrorType.CONFIG
        elif isinstance(error, ProtocolError):
            return ErrorType.INTERNAL
        elif isinstance(error, ProfileLookupError):
            return ErrorType.LOOKUP
        elif isinstance(error, DeliveryError):
            return ErrorType.DELIVERY
        elif isinstance(error, DestinationError):
            return ErrorType.DESTINATION_URL
        elif isinstance(error, (asyncio.TimeoutError, TimeoutError)):
            return ErrorType.TIMEOUT
        elif isinstance(error, (ConnectionError, OSError)):
            return ErrorType.CONNECTION

        error_str = str(error).lower()
        if "timeout" in error_str or "timed out" in error_str:
            return ErrorType.TIMEOUT
        elif "connection" in error_str or "websocket" in error_str:
            return ErrorType.CONNECTION
        return ErrorType.INTERNAL

    def log_error(
        self,
        error: BaseException,
        context: str = "",
        log: Optional[logging.Logger] = None
    ) -> ErrorType:
        """
        Log error at the level configured for its type

        Args:
            error: Exception object
            context: Short description of what was being done
            log: Logger to use (defaults to the module logger)

        Returns:
            The classified error type
        """
        error_type = self.classify_error(error)
        policy = ERROR_POLICIES.get(error_type, ERROR_POLICIES[ErrorType.INTERNAL])
        target = log or logger
        log_func = getattr(target, policy.log_level, target.error)

        prefix = f"{context}: " if context else ""
        log_func(f"[{error_type.value}] {prefix}{error}")
        return error_type

    def is_recoverable(self, error: BaseException) -> bool:
        policy = ERROR_POLICIES.get(self.classify_error(error), ERROR_POLICIES[ErrorType.INTERNAL])
        return policy.recoverable


# Global error handler instance
error_handler = ErrorHandler()
