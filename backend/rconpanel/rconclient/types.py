"""Data classes used in the RCON client module."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum, StrEnum


class RCONPacketType(IntEnum):
    """Types for a Source RCON TCP packet.

    Defined in the `Valve Developer Community RCON documentation
    <https://developer.valvesoftware.com/wiki/Source_RCON_Protocol>`_.

    :cvar RESPONSE_VALUE: Body of a command response
    :cvar EXEC_COMMAND: A command sent to the server
    :cvar AUTH_RESPONSE: Reply to an authentication request
    :cvar AUTH: Authentication request carrying the secret
    """

    RESPONSE_VALUE = 0
    EXEC_COMMAND = 2
    AUTH_RESPONSE = 2
    AUTH = 3


@dataclass(frozen=True)
class ServerRecord:
    """Identity and connection parameters for one remote server.

    :param id: Stable identifier assigned by the server store
    :param host: Hostname or IP address of the RCON endpoint
    :param port: RCON port
    :param secret: Shared RCON secret
    """

    id: str
    host: str
    port: int
    secret: str = ""

    def __repr__(self) -> str:
        return f"ServerRecord(id={self.id!r}, host={self.host!r}, port={self.port})"


class SessionState(Enum):
    """Connection lifecycle of a session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    LIVE = "live"


class ResultKind(StrEnum):
    """Outcome of a command execution."""

    SUCCESS = "success"
    SOFT_TIMEOUT = "soft-timeout"
    NO_CONNECTION = "no-connection"


@dataclass(frozen=True)
class CommandResult:
    """Tagged result of running a command against a server.

    A soft timeout means the server did not answer in time but the
    connection is still presumed healthy.

    :param kind: The outcome of the command
    :param text: The raw response text, only present on success
    """

    kind: ResultKind
    text: str | None = None

    @property
    def ok(self) -> bool:
        """Whether the command reached the server without a connection failure."""
        return self.kind is not ResultKind.NO_CONNECTION

    @classmethod
    def success(cls, text: str) -> CommandResult:
        return cls(ResultKind.SUCCESS, text)

    @classmethod
    def soft_timeout(cls) -> CommandResult:
        return cls(ResultKind.SOFT_TIMEOUT)

    @classmethod
    def no_connection(cls) -> CommandResult:
        return cls(ResultKind.NO_CONNECTION)

    def to_dict(self) -> dict[str, object]:
        """Serialize for HTTP responses.

        :return: A mapping with ``ok``, ``text`` and ``kind`` keys
        """
        return {"ok": self.ok, "text": self.text, "kind": self.kind.value}


@dataclass(frozen=True)
class SessionStatus:
    """Cached liveness flags of one session, as reported by a snapshot."""

    id: str
    connected: bool
    authenticated: bool
