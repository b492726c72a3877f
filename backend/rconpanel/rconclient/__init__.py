"""Supervised RCON sessions for remote game servers."""

from .connection import SocketClient
from .manager import RCONManager, ServerStore
from .rcon_exceptions import (
    RCONClientError,
    RCONClientNotConnectedError,
    UnknownServerError,
)
from .session import Session, SessionConfig
from .types import (
    CommandResult,
    ResultKind,
    ServerRecord,
    SessionState,
    SessionStatus,
)

__all__ = [
    "CommandResult",
    "RCONClientError",
    "RCONClientNotConnectedError",
    "RCONManager",
    "ResultKind",
    "ServerRecord",
    "ServerStore",
    "Session",
    "SessionConfig",
    "SessionState",
    "SessionStatus",
    "SocketClient",
    "UnknownServerError",
]
