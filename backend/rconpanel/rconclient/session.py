"""Per-server RCON session with liveness supervision.

A session owns at most one codec connection at a time and a background
heartbeat task checking it. Every operation touching the connection
(connect, disconnect, command, liveness check) runs under the session lock, so a
transport is never read or written from two call paths at once and commands
for one server run one at a time in submission order.

**Generations:**

Each connect and teardown bumps the session generation. The heartbeat task
remembers the generation it was started for and re-checks it after every
suspension point, so a liveness check that was sleeping or in flight while the session
was torn down, replaced or deleted never acts on its result.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import ClassVar

from .connection import SocketClient
from .rcon_exceptions import RCONClientError
from .types import CommandResult, ServerRecord, SessionState, SessionStatus

LOGGER = logging.getLogger(__name__)

ClientFactory = Callable[[str, int], Awaitable[SocketClient]]
Sleep = Callable[[float], Awaitable[None]]

_TRANSPORT_ERRORS = (OSError, asyncio.IncompleteReadError, RCONClientError)


@dataclass
class SessionConfig:
    """Timing policy shared by every session of a manager.

    All values are in seconds.

    :param connect_timeout: Bound on opening the socket and authenticating
    :param command_timeout: Bound on a command before it is a soft timeout
    :param heartbeat_interval: Period between liveness checks
    :param heartbeat_timeout: Bound on a single liveness check
    :param heartbeat_command: Command used as the liveness check
    """

    DEFAULT_CONNECT_TIMEOUT: ClassVar[float] = 10.0
    DEFAULT_COMMAND_TIMEOUT: ClassVar[float] = 2.0
    DEFAULT_HEARTBEAT_INTERVAL: ClassVar[float] = 5.0
    DEFAULT_HEARTBEAT_TIMEOUT: ClassVar[float] = 5.0

    connect_timeout: float = field(default=DEFAULT_CONNECT_TIMEOUT)
    command_timeout: float = field(default=DEFAULT_COMMAND_TIMEOUT)
    heartbeat_interval: float = field(default=DEFAULT_HEARTBEAT_INTERVAL)
    heartbeat_timeout: float = field(default=DEFAULT_HEARTBEAT_TIMEOUT)
    heartbeat_command: str = field(default="status")

    def __post_init__(self) -> None:
        """Reject timings that would let an operation hang or spin."""
        for name in (
            "connect_timeout",
            "command_timeout",
            "heartbeat_interval",
            "heartbeat_timeout",
        ):
            if getattr(self, name) <= 0:
                msg = f"{name} must be a positive number of seconds"
                raise ValueError(msg)


class Session:
    """Connection state of one remote server.

    .. code-block:: python
        session = Session(record, SessionConfig())
        await session.connect()
        result = await session.execute("status")
        await session.close()
    """

    def __init__(
        self,
        record: ServerRecord,
        config: SessionConfig,
        client_factory: ClientFactory = SocketClient.open,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Create a disconnected session.

        :param record: Connection parameters of the server
        :param config: Timing policy
        :param client_factory: Coroutine opening a codec for ``(host, port)``
        :param sleep: Coroutine used by the heartbeat to wait between liveness checks
        """
        self.id = record.id
        self.record = record
        self.config = config
        self.state = SessionState.DISCONNECTED
        self.connected = False
        self.authenticated = False

        self._client_factory = client_factory
        self._sleep = sleep
        self._connection: SocketClient | None = None
        self._heartbeat: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()
        self._generation = 0
        self._closed = False

    def __repr__(self) -> str:
        return f"Session(id={self.id!r}, state={self.state.name})"

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def status(self) -> SessionStatus:
        """Cached liveness flags, read without any network I/O."""
        return SessionStatus(self.id, self.connected, self.authenticated)

    def is_live(self) -> bool:
        """Check the flags and the transport of the current connection."""
        connection = self._connection
        return (
            self.state is SessionState.LIVE
            and connection is not None
            and connection.is_connected()
            and connection.is_authenticated()
            and connection.is_writable()
        )

    async def connect(self, record: ServerRecord | None = None) -> bool:
        """Open and authenticate a fresh connection, replacing any current one.

        :param record: Updated connection parameters, if they changed
        :return: True if the session is live afterwards
        """
        async with self._lock:
            if record is not None:
                self.record = record
            await self._teardown()
            return await self._connect()

    async def disconnect(self) -> None:
        """Stop the heartbeat and close the connection, if there is one."""
        self._stop_heartbeat()
        async with self._lock:
            await self._teardown()

    async def reconnect(self, record: ServerRecord | None = None) -> bool:
        """Disconnect, then connect again.

        :param record: Updated connection parameters, if they changed
        :return: True if the session is live afterwards
        """
        self._stop_heartbeat()
        async with self._lock:
            return await self._reconnect(record)

    async def close(self) -> None:
        """Tear the session down for good.

        Once called, no heartbeat check runs and no connect succeeds.
        """
        self._closed = True
        self._generation += 1
        self._stop_heartbeat()
        async with self._lock:
            await self._teardown()
        LOGGER.info("Session %s closed", self.id)

    async def execute(
        self,
        command: str,
        timeout: float | None = None,
    ) -> CommandResult:
        """Run a command, reconnecting first if the session is not live.

        :param command: The command text, already sanitized by the caller
        :param timeout: Command timeout, defaults to the configured one
        :return: The tagged command result
        """
        timeout = self.config.command_timeout if timeout is None else timeout

        async with self._lock:
            if not self.is_live():
                LOGGER.info("Connection issue, reconnecting %s", self.id)
                await self._reconnect()

            connection = self._connection
            if connection is None or not self.is_live():
                LOGGER.error("Cannot execute on %s, no valid connection: %s", self.id, command)
                return CommandResult.no_connection()

            try:
                response = await asyncio.wait_for(
                    connection.send_command(command),
                    timeout=timeout,
                )
            except TimeoutError:
                LOGGER.warning("Command timed out on %s: %s", self.id, command)
                return CommandResult.soft_timeout()
            except _TRANSPORT_ERRORS:
                LOGGER.warning(
                    "Transport fault on %s while running: %s",
                    self.id,
                    command,
                    exc_info=True,
                )
                await self._teardown()
                return CommandResult.no_connection()
            except Exception:
                LOGGER.exception("Unexpected codec fault on %s", self.id)
                await self._teardown()
                return CommandResult.no_connection()

        return CommandResult.success(response)

    async def _connect(self) -> bool:
        """Open and authenticate a connection. Caller holds the lock."""
        if self._closed:
            return False

        self._generation += 1
        generation = self._generation
        record = self.record

        LOGGER.info("Connecting RCON %s at %s:%d", self.id, record.host, record.port)
        self.state = SessionState.CONNECTING
        try:
            async with asyncio.timeout(self.config.connect_timeout):
                self._connection = await self._client_factory(record.host, record.port)
                self.state = SessionState.AUTHENTICATING
                accepted = await self._connection.authenticate(record.secret)
        except TimeoutError:
            LOGGER.error("Authentication timed out for %s", self.id)
            await self._teardown()
            return False
        except _TRANSPORT_ERRORS as e:
            LOGGER.error("Connection to %s failed: %s", self.id, e)
            await self._teardown()
            return False
        except Exception:
            LOGGER.exception("Unexpected fault while connecting %s", self.id)
            await self._teardown()
            return False

        if self._closed or generation != self._generation:
            # superseded while authenticating
            await self._teardown()
            return False

        if not accepted:
            LOGGER.warning("Authentication rejected by %s", self.id)
            await self._teardown()
            return False

        self.state = SessionState.LIVE
        self.connected = True
        self.authenticated = True
        self._heartbeat = asyncio.create_task(
            self._heartbeat_loop(generation),
            name=f"rcon-heartbeat-{self.id}",
        )
        LOGGER.info("RCON authenticated %s", self.id)
        return True

    async def _reconnect(self, record: ServerRecord | None = None) -> bool:
        """Tear down and connect within one connect timeout. Caller holds the lock."""
        if record is not None:
            self.record = record
        try:
            async with asyncio.timeout(self.config.connect_timeout):
                await self._teardown()
                return await self._connect()
        except TimeoutError:
            LOGGER.error("Reconnect timed out for %s", self.id)
            await self._teardown()
            return False

    async def _teardown(self) -> None:
        """Drop the connection and clear the liveness flags. Caller holds the lock."""
        self._generation += 1
        self._stop_heartbeat()

        connection, self._connection = self._connection, None
        self.state = SessionState.DISCONNECTED
        self.connected = False
        self.authenticated = False

        if connection is not None:
            LOGGER.info("Disconnecting RCON %s", self.id)
            await connection.close()

    def _stop_heartbeat(self) -> None:
        task, self._heartbeat = self._heartbeat, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def _is_current(self, generation: int) -> bool:
        return not self._closed and generation == self._generation

    async def _heartbeat_loop(self, generation: int) -> None:
        """Check the connection periodically until superseded or cancelled.

        Faults are logged and end the loop, the next command reconnects.

        :param generation: The generation this heartbeat belongs to
        """
        try:
            while True:
                await self._sleep(self.config.heartbeat_interval)
                if not self._is_current(generation):
                    return

                async with self._lock:
                    if not self._is_current(generation):
                        return

                    if await self._check_alive():
                        continue

                    if not self._is_current(generation):
                        return

                    await self._reconnect()
                    # the new connection runs its own heartbeat
                    return
        except Exception:
            LOGGER.exception("Heartbeat for %s stopped on an unexpected fault", self.id)

    async def _check_alive(self) -> bool:
        """Send the liveness check command. Caller holds the lock.

        :return: True if the server answered in time
        """
        connection = self._connection
        if connection is None or not connection.is_writable():
            LOGGER.info("Heartbeat found %s unwritable, reconnecting", self.id)
            return False

        try:
            await asyncio.wait_for(
                connection.send_command(self.config.heartbeat_command),
                timeout=self.config.heartbeat_timeout,
            )
        except TimeoutError:
            LOGGER.warning("Heartbeat timed out for %s, reconnecting", self.id)
            return False
        except _TRANSPORT_ERRORS as e:
            LOGGER.warning("Heartbeat error for %s (%s), reconnecting", self.id, e)
            return False
        except Exception:
            LOGGER.exception("Unexpected heartbeat fault for %s", self.id)
            return False

        LOGGER.debug("Heartbeat success %s", self.id)
        return True
