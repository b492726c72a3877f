"""Unit tests for the RCONManager registry."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from rconpanel.rconclient import (
    RCONManager,
    ResultKind,
    ServerRecord,
    Session,
    SessionStatus,
    UnknownServerError,
)

OTHER = ServerRecord(id="2", host="10.0.0.2", port=27015, secret="y")  # noqa: S106


class FakeStore:
    """In-memory server store.

    Setting ``gate`` holds every ``get_by_id`` until the event is set.
    """

    def __init__(self, *records: ServerRecord) -> None:
        self.records = {record.id: record for record in records}
        self.fail = False
        self.gate: asyncio.Event | None = None

    async def list_all(self) -> list[ServerRecord]:
        if self.fail:
            msg = "database is locked"
            raise RuntimeError(msg)
        return list(self.records.values())

    async def get_by_id(self, server_id: str) -> ServerRecord | None:
        if self.gate is not None:
            await self.gate.wait()
        return self.records.get(server_id)


@pytest.fixture
def store(record) -> FakeStore:
    return FakeStore(record, OTHER)


@pytest.fixture
def manager(store, config, client_factory, clock) -> RCONManager:
    return RCONManager(store, config, client_factory, clock.sleep)


@pytest.mark.asyncio
class TestManagerInit:
    """Test suite for bulk initialization."""

    async def test_init_all_connects_every_server(self, manager, client_factory) -> None:
        """Test that init connects each stored server once."""
        await manager.init_all()

        assert sorted(client_factory.calls) == [("10.0.0.2", 27015), ("127.0.0.1", 27015)]
        assert sorted(manager.snapshot(), key=lambda s: s.id) == [
            SessionStatus("1", connected=True, authenticated=True),
            SessionStatus("2", connected=True, authenticated=True),
        ]

        await manager.shutdown()

    async def test_init_all_is_best_effort(self, manager, client_factory) -> None:
        """Test that one unreachable server does not stop the others."""
        client_factory.refused = {"10.0.0.2"}

        await manager.init_all()

        assert manager.status("1") == SessionStatus("1", True, True)
        assert manager.status("2") == SessionStatus("2", False, False)
        assert "2" in manager

        await manager.shutdown()

    async def test_init_all_survives_store_failure(self, manager, store, client_factory) -> None:
        """Test that a failing store is logged and leaves the registry empty."""
        store.fail = True

        await manager.init_all()

        assert manager.snapshot() == []
        assert client_factory.calls == []

    async def test_init_all_skips_tracked_servers(self, manager, client_factory) -> None:
        """Test that a second init does not reconnect live servers."""
        await manager.init_all()
        await manager.init_all()

        assert len(client_factory.calls) == 2  # noqa: PLR2004

        await manager.shutdown()

    async def test_context_manager_connects_and_shuts_down(
        self, store, config, client_factory, clock
    ) -> None:
        """Test that leaving the context closes every session."""
        async with RCONManager(store, config, client_factory, clock.sleep) as manager:
            assert "1" in manager
            assert "2" in manager

        assert manager.snapshot() == []
        assert all(client.closed for client in client_factory.clients)
        await clock.advance(60.0)
        assert clock.sleepers == 0


@pytest.mark.asyncio
class TestManagerLifecycle:
    """Test suite for add, connect, reconnect, disconnect and delete."""

    async def test_add_keeps_server_after_failed_connect(
        self, manager, client_factory
    ) -> None:
        """Test that a server added while down recovers on its next command."""
        client_factory.refused = {"10.0.0.2"}

        assert await manager.add(OTHER) is False
        assert "2" in manager

        client_factory.refused.clear()
        result = await manager.execute("2", "status")

        assert result.kind is ResultKind.SUCCESS
        assert manager.status("2").connected

        await manager.shutdown()

    async def test_connect_looks_up_stored_record(self, manager, client_factory) -> None:
        """Test that connect without a record reads it from the store."""
        assert await manager.connect("2") is True

        assert client_factory.calls == [("10.0.0.2", 27015)]

        await manager.shutdown()

    async def test_connect_unknown_server_raises(self, manager) -> None:
        """Test that connecting an id with no record is an error."""
        with pytest.raises(UnknownServerError) as exc_info:
            await manager.connect("missing")

        assert exc_info.value.server_id == "missing"
        assert isinstance(exc_info.value, KeyError)

    async def test_reconnect_picks_up_store_edits(
        self, manager, store, client_factory
    ) -> None:
        """Test that reconnect uses the record as currently stored."""
        await manager.connect("1")
        first = client_factory.last
        store.records["1"] = ServerRecord(id="1", host="10.0.0.9", port=27020, secret="z")  # noqa: S106

        assert await manager.reconnect("1") is True

        assert first.closed
        assert client_factory.calls[-1] == ("10.0.0.9", 27020)
        assert client_factory.last.secret == "z"  # noqa: S105

        await manager.shutdown()

    async def test_reconnect_untracked_stored_server_connects_it(
        self, manager
    ) -> None:
        """Test that reconnect starts tracking a stored server."""
        assert await manager.reconnect("2") is True
        assert "2" in manager

        await manager.shutdown()

    async def test_reconnect_unknown_server_raises(self, manager, client_factory) -> None:
        """Test that reconnecting an id nobody knows is an error."""
        with pytest.raises(UnknownServerError):
            await manager.reconnect("missing")

        assert client_factory.calls == []

    async def test_disconnect_keeps_tracking(self, manager, client_factory) -> None:
        """Test that disconnect closes the connection but keeps the session."""
        await manager.connect("1")

        await manager.disconnect("1")
        await manager.disconnect("missing")

        assert "1" in manager
        assert "missing" not in manager
        assert client_factory.last.closed
        assert manager.status("1") == SessionStatus("1", False, False)

        await manager.shutdown()

    async def test_delete_during_reconnect_stays_deleted(
        self, manager, store, client_factory, clock
    ) -> None:
        """Test that a reconnect reading the store cannot revive a deleted server."""
        await manager.connect("1")
        store.gate = asyncio.Event()

        reconnecting = asyncio.create_task(manager.reconnect("1"))
        await clock.settle()

        await manager.delete("1")
        del store.records["1"]
        store.gate.set()

        with pytest.raises(UnknownServerError):
            await reconnecting
        await clock.settle()

        assert "1" not in manager
        assert manager.snapshot() == []
        assert len(client_factory.clients) == 1
        assert clock.sleepers == 0

    async def test_delete_during_reconnect_of_stored_row(
        self, manager, store, client_factory, clock
    ) -> None:
        """Test that the row still being stored does not revive a deleted server."""
        await manager.connect("1")
        store.gate = asyncio.Event()

        reconnecting = asyncio.create_task(manager.reconnect("1"))
        await clock.settle()

        await manager.delete("1")
        store.gate.set()

        assert await reconnecting is False
        await clock.settle()

        assert "1" not in manager
        assert len(client_factory.clients) == 1
        assert clock.sleepers == 0

    async def test_delete_is_idempotent(self, manager, client_factory, clock, config) -> None:
        """Test that a deleted server is gone and never checked again."""
        await manager.connect("1")
        client = client_factory.last

        await manager.delete("1")
        await manager.delete("1")
        await manager.delete("missing")
        await clock.advance(config.heartbeat_interval * 3)

        assert "1" not in manager
        assert manager.status("1") is None
        assert client.closed
        assert client.sent == []
        assert clock.sleepers == 0

    async def test_delete_then_add_starts_fresh(self, manager, record, client_factory) -> None:
        """Test that a re-added id gets a new session."""
        await manager.connect("1")
        await manager.delete("1")

        assert await manager.add(record) is True

        assert len(client_factory.clients) == 2  # noqa: PLR2004
        assert manager.status("1").authenticated

        await manager.shutdown()


@pytest.mark.asyncio
class TestManagerExecute:
    """Test suite for command execution through the manager."""

    async def test_execute_unknown_server_makes_no_network_call(
        self, manager, client_factory
    ) -> None:
        """Test that an unknown id is a no-connection result."""
        result = await manager.execute("missing", "status")

        assert result.kind is ResultKind.NO_CONNECTION
        assert result.ok is False
        assert client_factory.calls == []

    async def test_execute_never_raises(self, manager) -> None:
        """Test that an unexpected fault becomes a no-connection result."""
        await manager.connect("1")

        with patch.object(
            Session,
            "execute",
            AsyncMock(side_effect=RuntimeError("boom")),
        ):
            result = await manager.execute("1", "status")

        assert result.kind is ResultKind.NO_CONNECTION

        await manager.shutdown()

    async def test_exec_cfg_and_plugin_commands(self, manager, client_factory) -> None:
        """Test the command text of the cfg and plugin helpers."""
        await manager.connect("1")

        await manager.exec_cfg("1", "warmup.cfg")
        await manager.exec_plugin_command("1", "unload", "disabled/MatchZy")
        await manager.exec_plugin_command("1", "reload", "MatchZy")

        assert client_factory.last.sent == [
            "exec warmup.cfg",
            'css_plugins unload "disabled/MatchZy"',
            'css_plugins reload "MatchZy"',
        ]

        await manager.shutdown()

    async def test_servers_do_not_block_each_other(self, manager, client_factory) -> None:
        """Test that a stalled server does not delay commands to another."""
        await manager.connect("1")
        client_factory.for_host("127.0.0.1")[0].hang_commands = {"slow"}
        await manager.connect("2")

        stalled = asyncio.create_task(manager.execute("1", "slow"))
        await asyncio.sleep(0)

        result = await manager.execute("2", "status")

        assert result.kind is ResultKind.SUCCESS
        assert not stalled.done()
        assert (await stalled).kind is ResultKind.SOFT_TIMEOUT

        await manager.shutdown()

    async def test_heartbeat_failure_is_visible_then_recovers(
        self, manager, record, client_factory, clock, config
    ) -> None:
        """Test that a dropped server reads as down until re-authenticated."""
        gate = asyncio.Event()
        client_factory.plans = [{"fail_commands": {"status"}}, {"auth_gate": gate}]
        await manager.add(record)
        assert manager.snapshot() == [SessionStatus("1", True, True)]

        await clock.advance(config.heartbeat_interval)

        assert manager.snapshot() == [SessionStatus("1", False, False)]

        gate.set()
        await clock.settle()

        assert manager.snapshot() == [SessionStatus("1", True, True)]
        assert len(client_factory.clients) == 2  # noqa: PLR2004

        await manager.shutdown()
