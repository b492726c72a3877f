"""Pytest configuration and fakes shared by the test suites.

The fake codec records what is sent over it and can be told to reject
authentication, hang, fail or become unwritable. The fake clock replaces the
heartbeat's sleep so tests decide when an interval has elapsed.
"""

import asyncio
import sys
from dataclasses import dataclass, field
from pathlib import Path

import pytest

# Add the backend directory to Python path so tests can import rconpanel
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from rconpanel.rconclient import ServerRecord, SessionConfig  # noqa: E402

SETTLE_ROUNDS = 50


async def settle() -> None:
    """Let every ready task run until the loop is idle."""
    for _ in range(SETTLE_ROUNDS):
        await asyncio.sleep(0)


@dataclass
class FakeClient:
    """In-memory stand-in for SocketClient."""

    host: str
    port: int
    accept: bool = True
    auth_gate: asyncio.Event | None = None
    hang_commands: set[str] = field(default_factory=set)
    fail_commands: set[str] = field(default_factory=set)
    responses: dict[str, str] = field(default_factory=dict)
    fail_close: bool = False

    connected: bool = True
    authenticated: bool = False
    writable: bool = True
    closed: bool = False
    sent: list[str] = field(default_factory=list)
    active: int = 0
    max_active: int = 0

    async def authenticate(self, secret: str) -> bool:
        self.secret = secret
        if self.auth_gate is not None:
            await self.auth_gate.wait()
        self.authenticated = self.accept
        return self.accept

    async def send_command(self, command: str) -> str:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            self.sent.append(command)
            await asyncio.sleep(0)
            if command in self.hang_commands:
                await asyncio.Event().wait()
            if command in self.fail_commands:
                self.connected = False
                msg = "Connection reset by peer"
                raise ConnectionResetError(msg)
            return self.responses.get(command, f"reply to {command}")
        finally:
            self.active -= 1

    def is_connected(self) -> bool:
        return self.connected

    def is_authenticated(self) -> bool:
        return self.connected and self.authenticated

    def is_writable(self) -> bool:
        return self.connected and self.writable

    async def close(self) -> None:
        self.closed = True
        self.connected = False
        self.authenticated = False
        if self.fail_close:
            msg = "close failed"
            raise RuntimeError(msg)


class FakeClientFactory:
    """Hands out FakeClients, configured in order by ``plans``.

    Hosts in ``refused`` fail to open, like a server that is down.
    """

    def __init__(self) -> None:
        self.clients: list[FakeClient] = []
        self.calls: list[tuple[str, int]] = []
        self.plans: list[dict] = []
        self.error: Exception | None = None
        self.refused: set[str] = set()

    async def __call__(self, host: str, port: int) -> FakeClient:
        self.calls.append((host, port))
        if self.error is not None:
            raise self.error
        if host in self.refused:
            msg = f"Connection refused by {host}"
            raise ConnectionRefusedError(msg)
        options = self.plans.pop(0) if self.plans else {}
        client = FakeClient(host, port, **options)
        self.clients.append(client)
        return client

    @property
    def last(self) -> FakeClient:
        return self.clients[-1]

    def for_host(self, host: str) -> list[FakeClient]:
        return [client for client in self.clients if client.host == host]


class FakeClock:
    """Manually advanced clock driving heartbeat sleeps."""

    def __init__(self) -> None:
        self.now = 0.0
        self._sleepers: list[tuple[float, asyncio.Future[None]]] = []

    async def sleep(self, delay: float) -> None:
        entry = (self.now + delay, asyncio.get_running_loop().create_future())
        self._sleepers.append(entry)
        try:
            await entry[1]
        finally:
            if entry in self._sleepers:
                self._sleepers.remove(entry)

    async def settle(self) -> None:
        await settle()

    @property
    def sleepers(self) -> int:
        return len(self._sleepers)

    async def advance(self, seconds: float) -> None:
        await settle()
        self.now += seconds
        for deadline, future in list(self._sleepers):
            if deadline <= self.now and not future.done():
                future.set_result(None)
        await settle()


@pytest.fixture
def record() -> ServerRecord:
    return ServerRecord(id="1", host="127.0.0.1", port=27015, secret="x")  # noqa: S106


@pytest.fixture
def config() -> SessionConfig:
    return SessionConfig(
        connect_timeout=1.0,
        command_timeout=0.05,
        heartbeat_interval=5.0,
        heartbeat_timeout=0.05,
    )


@pytest.fixture
def client_factory() -> FakeClientFactory:
    return FakeClientFactory()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
