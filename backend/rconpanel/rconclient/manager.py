"""Registry of RCON sessions, the single entry point for the HTTP layer.

The manager maps server ids to sessions and mirrors the server records it
connected them with, so internal recovery never has to query the store
mid-flight. It is constructed once by the application and injected where
needed; it can be used as an async context manager that connects every
known server on entry and tears every session down on exit.

.. code-block:: python
    async with RCONManager(store, SessionConfig()) as manager:
        result = await manager.execute("1", "status")
        if result.kind is ResultKind.SUCCESS:
            print(result.text)
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Protocol, Self

from .connection import SocketClient
from .rcon_exceptions import UnknownServerError
from .session import ClientFactory, Session, SessionConfig, Sleep
from .types import CommandResult, ServerRecord, SessionStatus

if TYPE_CHECKING:
    from types import TracebackType

LOGGER = logging.getLogger(__name__)


class ServerStore(Protocol):
    """Read access to the persistent server records."""

    async def list_all(self) -> list[ServerRecord]: ...

    async def get_by_id(self, server_id: str) -> ServerRecord | None: ...


class RCONManager:
    """Owns every session and the reconnection policy."""

    def __init__(
        self,
        store: ServerStore,
        config: SessionConfig | None = None,
        client_factory: ClientFactory = SocketClient.open,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Create an empty registry.

        :param store: Source of server records
        :param config: Timing policy for every session
        :param client_factory: Coroutine opening a codec for ``(host, port)``
        :param sleep: Coroutine used by heartbeats to wait between liveness checks
        """
        self.config = config or SessionConfig()
        self._store = store
        self._client_factory = client_factory
        self._sleep = sleep
        self._sessions: dict[str, Session] = {}
        self._records: dict[str, ServerRecord] = {}
        self._registry_lock = asyncio.Lock()

    async def __aenter__(self) -> Self:
        """Connect every server known to the store."""
        await self.init_all()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Tear every session down.

        :param exc_type: Type of exception if raised within context
        :param exc_val: Exception value if raised within context
        :param exc_tb: Description of traceback if exception raised
        """
        await self.shutdown()

    def __contains__(self, server_id: str) -> bool:
        return server_id in self._sessions

    async def init_all(self) -> None:
        """Connect every server in the store not tracked yet, best effort."""
        try:
            records = await self._store.list_all()
        except Exception:
            LOGGER.exception("Error initializing RCON connections")
            return

        LOGGER.info("Initializing RCON connections for %d servers", len(records))
        pending = [
            record for record in records if record.id not in self._sessions
        ]
        results = await asyncio.gather(
            *(self.connect(record.id, record) for record in pending),
            return_exceptions=True,
        )
        for record, result in zip(pending, results, strict=True):
            if isinstance(result, BaseException):
                LOGGER.error(
                    "Error connecting %s during init",
                    record.id,
                    exc_info=result,
                )

    async def add(self, record: ServerRecord) -> bool:
        """Track a new server and try to connect it.

        A failed connection is not an error, the server stays tracked and
        recovers through a manual reconnect or the next command.

        :param record: The stored server record
        :return: True if the server is live afterwards
        """
        LOGGER.info("Adding server %s", record.id)
        return await self.connect(record.id, record)

    async def connect(
        self,
        server_id: str,
        record: ServerRecord | None = None,
    ) -> bool:
        """Connect a server, creating its session on first sight.

        :param server_id: The server id
        :param record: Connection parameters, looked up when omitted
        :return: True if the server is live afterwards
        :raises UnknownServerError: If no record is known for the id
        """
        if record is None:
            record = self._records.get(server_id) or await self._fetch_record(
                server_id,
            )
        if record is None:
            raise UnknownServerError(server_id)

        async with self._registry_lock:
            session = self._track(server_id, record)

        return await session.connect(record)

    async def reconnect(self, server_id: str) -> bool:
        """Disconnect and connect again, picking up edits from the store.

        A server deleted while its record was being read stays deleted.

        :param server_id: The server id
        :return: True if the server is live afterwards
        :raises UnknownServerError: If the id is neither tracked nor stored
        """
        tracked = self._sessions.get(server_id)
        record = await self._fetch_record(server_id) or self._records.get(server_id)
        if record is None:
            raise UnknownServerError(server_id)

        async with self._registry_lock:
            current = self._sessions.get(server_id)
            if tracked is not None and current is not tracked:
                LOGGER.info("Server %s was deleted during reconnect", server_id)
                return False
            session = self._track(server_id, record)

        if current is None:
            return await session.connect(record)

        LOGGER.info("Reconnecting server %s", server_id)
        return await session.reconnect(record)

    async def disconnect(self, server_id: str) -> None:
        """Close the connection of a server but keep tracking it.

        Disconnecting an unknown id is a no-op.

        :param server_id: The server id
        """
        session = self._sessions.get(server_id)
        if session is not None:
            await session.disconnect()

    async def delete(self, server_id: str) -> None:
        """Stop tracking a server and tear its session down.

        Deleting an unknown id is a no-op.

        :param server_id: The server id
        """
        async with self._registry_lock:
            session = self._sessions.pop(server_id, None)
            self._records.pop(server_id, None)

        if session is None:
            return

        LOGGER.info("Deleting server %s", server_id)
        await session.close()

    async def execute(
        self,
        server_id: str,
        command: str,
        tag: str = "rcon",
    ) -> CommandResult:
        """Run a command on a server.

        Never raises: unknown servers and connection faults come back as a
        ``no-connection`` result.

        :param server_id: The server id
        :param command: The command text, already sanitized by the caller
        :param tag: Log tag describing the caller
        :return: The tagged command result
        """
        session = self._sessions.get(server_id)
        if session is None:
            LOGGER.warning("Cannot execute on unknown server %s: %s", server_id, command)
            return CommandResult.no_connection()

        LOGGER.debug("[%s] %s", tag, command)
        try:
            return await session.execute(command, self.config.command_timeout)
        except Exception:
            LOGGER.exception("Error executing command on %s", server_id)
            return CommandResult.no_connection()

    async def exec_cfg(self, server_id: str, cfg_name: str) -> CommandResult:
        """Execute a server-side config file.

        :param server_id: The server id
        :param cfg_name: Name of the cfg file, e.g. ``warmup.cfg``
        :return: The tagged command result
        """
        return await self.execute(server_id, f"exec {cfg_name}", tag="setup-game")

    async def exec_plugin_command(
        self,
        server_id: str,
        action: str,
        plugin_path: str,
    ) -> CommandResult:
        """Load, reload or unload a server plugin.

        :param server_id: The server id
        :param action: The plugin manager action, e.g. ``unload``
        :param plugin_path: The plugin path relative to the plugin directory
        :return: The tagged command result
        """
        return await self.execute(
            server_id,
            f'css_plugins {action} "{plugin_path}"',
            tag="plugins",
        )

    def status(self, server_id: str) -> SessionStatus | None:
        """Cached flags of one server, or None if it is not tracked."""
        session = self._sessions.get(server_id)
        return session.status if session is not None else None

    def snapshot(self) -> list[SessionStatus]:
        """Cached flags of every tracked server, without any network I/O."""
        return [session.status for session in self._sessions.values()]

    async def shutdown(self) -> None:
        """Stop every heartbeat and close every connection."""
        async with self._registry_lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            self._records.clear()

        LOGGER.info("Shutting down %d RCON sessions", len(sessions))
        await asyncio.gather(
            *(session.close() for session in sessions),
            return_exceptions=True,
        )

    def _track(self, server_id: str, record: ServerRecord) -> Session:
        """Mirror the record and return the session, creating it if new.

        Caller holds the registry lock.
        """
        self._records[server_id] = record
        session = self._sessions.get(server_id)
        if session is None:
            session = Session(record, self.config, self._client_factory, self._sleep)
            self._sessions[server_id] = session
        return session

    async def _fetch_record(self, server_id: str) -> ServerRecord | None:
        try:
            return await self._store.get_by_id(server_id)
        except Exception:
            LOGGER.exception("Error reading server %s from the store", server_id)
            return None
