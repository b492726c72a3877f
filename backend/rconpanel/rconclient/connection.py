"""RCON communication client.

Low-level codec for the Source RCON protocol, used by a session for
authenticating and exchanging command/response pairs over one long-lived
connection. The philosophy is to bubble up socket exceptions for the session
to handle reconnects, and report authentication rejections as a falsy result.

Frame reads are resumable: when the caller abandons a command (for example
by wrapping it in :func:`asyncio.wait_for`), the stream is never left
mid-frame, and the stale replies are discarded by the next command.

Packet format reference:
https://developer.valvesoftware.com/wiki/Source_RCON_Protocol#Basic_Packet_Structure
"""

import asyncio
import logging
import struct

from .rcon_exceptions import RCONClientNotConnectedError
from .types import RCONPacketType

LOGGER = logging.getLogger(__name__)


class SocketClient:
    """Client that manages an RCON connection to a server.

    Supports single-coroutine access only, callers serialize access.
    """

    # request id (4) + packet type (4) + 2 null bytes (2)
    _PACKET_METADATA_SIZE = 10
    _AUTH_REQUEST_ID = 1
    _AUTH_FAILED_ID = -1
    DEFAULT_CLOSE_TIMEOUT = 2.0

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        close_timeout: float = DEFAULT_CLOSE_TIMEOUT,
    ) -> None:
        """Wrap an already opened stream pair.

        :param reader: The StreamReader for the socket
        :param writer: The StreamWriter for the socket
        :param close_timeout: Seconds to wait for a graceful close before
            the transport is aborted
        """
        self._reader = reader
        self._writer = writer
        self.close_timeout = close_timeout
        self._request_id: int = self._AUTH_REQUEST_ID
        self._pending_length: int | None = None
        self._connected = True
        self._authenticated = False

    @classmethod
    async def open(cls, host: str, port: int) -> "SocketClient":
        """Open a TCP connection to an RCON server.

        :param host: The server host
        :param port: The server RCON port
        :return: A connected but unauthenticated client

        :raises OSError: if the connection cannot be established
        """
        reader, writer = await asyncio.open_connection(host, port)
        return cls(reader, writer)

    def is_connected(self) -> bool:
        return self._connected

    def is_authenticated(self) -> bool:
        return self._connected and self._authenticated

    def is_writable(self) -> bool:
        """Whether bytes can still be written to the underlying transport."""
        return self._connected and not self._writer.is_closing()

    @staticmethod
    def _format_packet(
        payload: str,
        packet_type: RCONPacketType,
        request_id: int,
    ) -> bytes:
        """Format a packet to be sent to the RCON server.

        :param payload: The body of the packet
        :param packet_type: The type of the packet (RCONPacketType)
        :param request_id: The request ID for the packet
        :return: The formatted packet as bytes
        """
        body_bytes = payload.encode("utf-8")

        return (
            struct.pack("<i", len(body_bytes) + SocketClient._PACKET_METADATA_SIZE)
            + struct.pack("<i", request_id)
            + struct.pack("<i", packet_type.value)
            + body_bytes
            + b"\x00\x00"
        )

    async def _read_packet(self) -> tuple[int, int, str]:
        """Read one full packet from the RCON server.

        The announced length is remembered until the body arrives, so a
        cancelled read resumes on the same frame next time.

        :return: A tuple of (response_id, packet_type, response_body)

        :raises asyncio.IncompleteReadError: if the server closed the stream
        :raises ConnectionError: if the socket is no longer connected
        """
        if self._pending_length is None:
            length_bytes = await self._reader.readexactly(4)
            self._pending_length = struct.unpack("<i", length_bytes)[0]

        response_bytes = await self._reader.readexactly(self._pending_length)
        self._pending_length = None

        response_id, packet_type = struct.unpack("<ii", response_bytes[0:8])
        response_body = response_bytes[8:-2].decode("utf-8", errors="replace")

        return response_id, packet_type, response_body

    async def _write_packet(
        self,
        payload: str,
        packet_type: RCONPacketType,
        request_id: int,
    ) -> None:
        self._writer.write(self._format_packet(payload, packet_type, request_id))
        await self._writer.drain()

    def _next_request_id(self) -> int:
        self._request_id += 1
        return self._request_id

    async def authenticate(self, secret: str) -> bool:
        """Authenticate this connection with the shared secret.

        The server may send an empty RESPONSE_VALUE before the AUTH_RESPONSE,
        which is skipped.

        :param secret: The RCON secret
        :return: True if the server accepted the secret, else False

        :raises RCONClientNotConnectedError: if the client was closed
        :raises ConnectionError: if the socket is no longer connected
        """
        if not self._connected:
            msg = "Client disconnected"
            raise RCONClientNotConnectedError(msg)

        await self._write_packet(secret, RCONPacketType.AUTH, self._AUTH_REQUEST_ID)

        while True:
            try:
                response_id, packet_type, _ = await self._read_packet()
            except (ConnectionError, asyncio.IncompleteReadError):
                self._connected = False
                raise

            if packet_type != RCONPacketType.AUTH_RESPONSE:
                continue

            self._authenticated = response_id != self._AUTH_FAILED_ID
            return self._authenticated

    async def send_command(self, command: str) -> str:
        """Send a command to the RCON server and return the response.

        Handles multi-packet responses by following the command with an empty
        marker command and collecting all packets until the marker is echoed.

        :param command: The RCON command to send
        :return: The response from the RCON server

        :raises RCONClientNotConnectedError: if the client was closed
        :raises ConnectionError: if the socket is no longer connected
        """
        if not self._connected:
            msg = "Client disconnected"
            raise RCONClientNotConnectedError(msg)

        request_id = self._next_request_id()
        marker_id = self._next_request_id()

        try:
            await self._write_packet(command, RCONPacketType.EXEC_COMMAND, request_id)
            await self._write_packet("", RCONPacketType.EXEC_COMMAND, marker_id)

            response_parts = []
            while True:
                response_id, _, response_body = await self._read_packet()

                if response_id == marker_id:
                    break

                if response_id == request_id:
                    response_parts.append(response_body)
                else:
                    LOGGER.debug("Discarding stale RCON packet with id %d", response_id)
        except (ConnectionError, asyncio.IncompleteReadError):
            self._connected = False
            raise

        return "".join(response_parts)

    async def close(self) -> None:
        """Close the socket, aborting it if it does not close in time."""
        self._connected = False
        self._authenticated = False
        try:
            self._writer.close()
            async with asyncio.timeout(self.close_timeout):
                await self._writer.wait_closed()
        except TimeoutError:
            LOGGER.warning("RCON socket did not close in time, aborting it")
            self._writer.transport.abort()
        except Exception:
            # the socket is being discarded either way
            LOGGER.exception("Error while closing RCON socket")
