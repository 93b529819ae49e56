"""SSH sessions negotiated over an already-dialed socket.

The dial and the SSH handshake are separate so the connect step can
count a transport that came up but refused the handshake as one failed
attempt and retry from a fresh dial.
"""

from __future__ import annotations

import socket

import asyncssh

from ..errors import TransientConnectError
from ..observability.logging import get_logger

logger = get_logger(__name__)


class SSHCommunicator:
    """Communicator wrapping an asyncssh client connection."""

    def __init__(self, connection: asyncssh.SSHClientConnection) -> None:
        self._conn = connection
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def run(self, command: str) -> int:
        """Run ``command`` remotely and return its exit status (-1 if unknown)."""
        if self._closed:
            raise RuntimeError('communicator is closed')
        result = await self._conn.run(command, check=False)
        logger.debug('remote_command', command=command, exit_status=result.exit_status)
        return result.exit_status if result.exit_status is not None else -1

    async def close(self) -> None:
        """Close the session. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._conn.close()
        await self._conn.wait_closed()


class SSHSessionFactory:
    """SessionFactory performing a public-key SSH handshake.

    Args:
        known_hosts: asyncssh ``known_hosts`` argument. ``None`` disables
            host key checking, which is what a freshly created instance
            with an unknown host key needs.
        login_timeout: Upper bound on the handshake, in seconds.
    """

    def __init__(
        self,
        *,
        known_hosts: object = None,
        login_timeout: float = 10.0,
    ) -> None:
        self._known_hosts = known_hosts
        self._login_timeout = login_timeout

    def load_key(self, private_key: str) -> asyncssh.SSHKey:
        try:
            return asyncssh.import_private_key(private_key)
        except (asyncssh.KeyImportError, ValueError) as exc:
            raise ValueError(f'invalid SSH private key: {exc}') from exc

    async def open(
        self,
        connection: socket.socket,
        *,
        username: str,
        key: asyncssh.SSHKey,
    ) -> SSHCommunicator:
        try:
            conn = await asyncssh.connect(
                sock=connection,
                username=username,
                client_keys=[key],
                known_hosts=self._known_hosts,
                login_timeout=self._login_timeout,
            )
        except (asyncssh.Error, OSError) as exc:
            raise TransientConnectError(f'SSH handshake failed: {exc}', cause=exc) from exc

        return SSHCommunicator(conn)
