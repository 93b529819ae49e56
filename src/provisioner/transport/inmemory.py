"""In-memory dialer and session factory for tests and dry runs."""

from __future__ import annotations

from ..errors import TransientConnectError


class FakeConnection:
    """Stand-in for a connected socket."""

    def __init__(self, address: str) -> None:
        self.address = address
        self.closed = False

    def close(self) -> None:
        self.closed = True


class InMemoryDialer:
    """Dialer that fails the first ``fail_times`` dials, then connects.

    ``fail_times=None`` never connects.
    """

    def __init__(self, *, fail_times: int | None = 0) -> None:
        self.fail_times = fail_times
        self.calls: list[tuple[str, float]] = []
        self.connections: list[FakeConnection] = []

    async def dial(self, address: str, timeout: float) -> FakeConnection:
        self.calls.append((address, timeout))
        attempt = len(self.calls)
        if self.fail_times is None or attempt <= self.fail_times:
            raise TransientConnectError(f'connection refused: {address} (dial {attempt})')
        conn = FakeConnection(address)
        self.connections.append(conn)
        return conn


class InMemoryCommunicator:
    """Communicator that records commands instead of running them."""

    def __init__(self, connection: FakeConnection, username: str) -> None:
        self.connection = connection
        self.username = username
        self.commands: list[str] = []
        self.close_calls = 0
        self.close_fails = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def run(self, command: str) -> int:
        self.commands.append(command)
        return 0

    async def close(self) -> None:
        self.close_calls += 1
        if self.close_fails:
            raise OSError('broken pipe')
        self._closed = True
        self.connection.close()


class InMemorySessionFactory:
    """Session factory whose first ``handshake_fail_times`` handshakes fail."""

    def __init__(self, *, handshake_fail_times: int = 0) -> None:
        self.handshake_fail_times = handshake_fail_times
        self.opened: list[InMemoryCommunicator] = []
        self.attempts = 0

    def load_key(self, private_key: str) -> str:
        if 'PRIVATE KEY-----' not in private_key:
            raise ValueError('invalid SSH private key: no PEM block')
        return private_key

    async def open(
        self,
        connection: FakeConnection,
        *,
        username: str,
        key: str,
    ) -> InMemoryCommunicator:
        self.attempts += 1
        if self.attempts <= self.handshake_fail_times:
            raise ConnectionResetError('ssh: handshake failed: EOF')
        comm = InMemoryCommunicator(connection, username)
        self.opened.append(comm)
        return comm
