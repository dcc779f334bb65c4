"""
Mirror Relay Gateway Module

Discord gateway session, configuration and the ambient pieces around it
(errors, metrics, health, keep-alive server).
"""

from .config import MirrorConfig
from .errors import ConfigError, InvalidSessionError, MirrorError
from .protocol import GatewayFrame, MessageCreate, Opcode, Ready
from .session import ConnectionState, GatewaySession, SessionState

__all__ = [
    "MirrorConfig",
    "MirrorError",
    "ConfigError",
    "InvalidSessionError",
    "GatewayFrame",
    "MessageCreate",
    "Opcode",
    "Ready",
    "ConnectionState",
    "GatewaySession",
    "SessionState",
]
