"""Custom exceptions for the RCON client module."""


class RCONClientError(Exception):
    """Base class for RCON client errors."""


class RCONClientNotConnectedError(RCONClientError, ConnectionError):
    """Raised when a command is sent over a closed connection."""


class UnknownServerError(RCONClientError, KeyError):
    """Raised when an operation names a server id nobody registered."""

    def __init__(self, server_id: str) -> None:
        """Create the error for the given id.

        :param server_id: The id that could not be resolved
        """
        super().__init__(server_id)
        self.server_id = server_id

    def __str__(self) -> str:
        return f"Unknown server id: {self.server_id}"
