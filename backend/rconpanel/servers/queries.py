"""All queries related to the stored game servers.

Using the ServerQueries class as a repository for server records and the
panel state remembered for each server (last map, game type and mode).
"""

import logging
from dataclasses import dataclass

import aiosqlite
from aiosqlite import Connection

from rconpanel.rconclient import ServerRecord

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchState:
    """Panel state last applied to a server through match setup."""

    last_map: str | None = None
    last_game_type: str | None = None
    last_game_mode: str | None = None


class ServerQueries:
    """Repository for server-related queries."""

    CREATE_SERVERS_TABLE = """
        CREATE TABLE IF NOT EXISTS servers (
            id INTEGER PRIMARY KEY,
            host TEXT NOT NULL,
            port INTEGER NOT NULL,
            secret TEXT NOT NULL,
            last_map TEXT,
            last_game_type TEXT,
            last_game_mode TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );
        """

    LIST_SERVERS = """
        SELECT id, host, port, secret FROM servers ORDER BY id;
        """

    GET_SERVER = """
        SELECT id, host, port, secret FROM servers WHERE id = ?;
        """

    ADD_SERVER = """
        INSERT INTO servers (host, port, secret) VALUES (?, ?, ?);
        """

    UPDATE_SERVER = """
        UPDATE servers SET host = ?, port = ?, secret = ? WHERE id = ?;
        """

    DELETE_SERVER = """
        DELETE FROM servers WHERE id = ?;
        """

    GET_MATCH_STATE = """
        SELECT last_map, last_game_type, last_game_mode FROM servers WHERE id = ?;
        """

    UPDATE_MATCH_STATE = """
        UPDATE servers
           SET last_map = ?, last_game_type = ?, last_game_mode = ?
         WHERE id = ?;
        """

    def __init__(self, connection: Connection) -> None:
        self.connection = connection

    @classmethod
    async def create(cls, db_path: str) -> "ServerQueries":
        """Create a ServerQueries instance with its own aiosqlite connection.

        :param db_path: Path to the SQLite database file
        :return: Configured ServerQueries instance
        """
        connection = await aiosqlite.connect(db_path)
        return cls(connection)

    async def close(self) -> None:
        """Close the database connection."""
        await self.connection.close()

    async def initialize_tables(self) -> None:
        """Create the servers table if it does not exist.

        This method should be called during application startup.
        """
        await self.connection.execute(ServerQueries.CREATE_SERVERS_TABLE)
        await self.connection.commit()

    @staticmethod
    def _to_record(row: tuple) -> ServerRecord:
        server_id, host, port, secret = row
        return ServerRecord(id=str(server_id), host=host, port=int(port), secret=secret)

    @staticmethod
    def _to_row_id(server_id: str) -> int | None:
        """Convert a server id to the integer primary key, None if malformed."""
        try:
            row_id = int(str(server_id).strip())
        except ValueError:
            return None
        return row_id if row_id > 0 else None

    async def list_all(self) -> list[ServerRecord]:
        """Return every stored server.

        :return: The server records ordered by id
        """
        async with self.connection.execute(ServerQueries.LIST_SERVERS) as cursor:
            rows = await cursor.fetchall()
        return [self._to_record(row) for row in rows]

    async def get_by_id(self, server_id: str) -> ServerRecord | None:
        """Return one stored server.

        :param server_id: The server id
        :return: The server record, or None if no such server exists
        """
        row_id = self._to_row_id(server_id)
        if row_id is None:
            return None

        async with self.connection.execute(ServerQueries.GET_SERVER, (row_id,)) as cursor:
            row = await cursor.fetchone()
        return self._to_record(row) if row is not None else None

    async def add_server(self, host: str, port: int, secret: str) -> ServerRecord:
        """Store a new server.

        :param host: Hostname or IP address of the RCON endpoint
        :param port: RCON port
        :param secret: Shared RCON secret
        :return: The stored record with its assigned id
        """
        cursor = await self.connection.execute(
            ServerQueries.ADD_SERVER,
            (host, port, secret),
        )
        await self.connection.commit()
        LOGGER.info("Stored server %d at %s:%d", cursor.lastrowid, host, port)
        return ServerRecord(id=str(cursor.lastrowid), host=host, port=port, secret=secret)

    async def update_server(self, record: ServerRecord) -> bool:
        """Overwrite the connection parameters of a stored server.

        :param record: The edited record
        :return: True if the server existed
        """
        row_id = self._to_row_id(record.id)
        if row_id is None:
            return False

        cursor = await self.connection.execute(
            ServerQueries.UPDATE_SERVER,
            (record.host, record.port, record.secret, row_id),
        )
        await self.connection.commit()
        return cursor.rowcount > 0

    async def delete_server(self, server_id: str) -> bool:
        """Delete a stored server.

        :param server_id: The server id
        :return: True if a server was deleted
        """
        row_id = self._to_row_id(server_id)
        if row_id is None:
            return False

        cursor = await self.connection.execute(ServerQueries.DELETE_SERVER, (row_id,))
        await self.connection.commit()
        return cursor.rowcount > 0

    async def get_match_state(self, server_id: str) -> MatchState | None:
        """Return the panel state of a server.

        :param server_id: The server id
        :return: The match state, or None if no such server exists
        """
        row_id = self._to_row_id(server_id)
        if row_id is None:
            return None

        async with self.connection.execute(
            ServerQueries.GET_MATCH_STATE,
            (row_id,),
        ) as cursor:
            row = await cursor.fetchone()
        return MatchState(*row) if row is not None else None

    async def update_match_state(self, server_id: str, state: MatchState) -> bool:
        """Remember the map, game type and mode applied to a server.

        :param server_id: The server id
        :param state: The state to store
        :return: True if the server existed
        """
        row_id = self._to_row_id(server_id)
        if row_id is None:
            return False

        cursor = await self.connection.execute(
            ServerQueries.UPDATE_MATCH_STATE,
            (state.last_map, state.last_game_type, state.last_game_mode, row_id),
        )
        await self.connection.commit()
        return cursor.rowcount > 0
