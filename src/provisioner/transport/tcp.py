"""TCP dialer built on the running event loop.

Returns a connected non-blocking socket, ready to be handed to a session
factory. Refused, unreachable, unresolvable and timed-out connects all
surface as ``TransientConnectError`` so the retry policy can try again.
"""

from __future__ import annotations

import asyncio
import socket

from ..errors import TransientConnectError
from ..observability.logging import get_logger

logger = get_logger(__name__)


def split_address(address: str) -> tuple[str, int]:
    """Split ``host:port`` (or ``[v6]:port``) into its parts."""
    host, sep, port = address.rpartition(':')
    if not sep or not host or not port.isdigit():
        raise ValueError(f'address must be host:port, got {address!r}')
    if host.startswith('[') and host.endswith(']'):
        host = host[1:-1]
    return host, int(port)


class TcpDialer:
    """Dialer that opens plain TCP connections."""

    async def dial(self, address: str, timeout: float) -> socket.socket:
        host, port = split_address(address)
        loop = asyncio.get_running_loop()

        try:
            infos = await asyncio.wait_for(
                loop.getaddrinfo(host, port, type=socket.SOCK_STREAM),
                timeout,
            )
        except asyncio.TimeoutError as exc:
            raise TransientConnectError(f'resolving {host} timed out', cause=exc) from exc
        except OSError as exc:
            raise TransientConnectError(f'resolving {host} failed: {exc}', cause=exc) from exc

        last_error: BaseException | None = None
        for family, type_, proto, _, sockaddr in infos:
            sock = socket.socket(family, type_, proto)
            sock.setblocking(False)
            try:
                await asyncio.wait_for(loop.sock_connect(sock, sockaddr), timeout)
            except (OSError, asyncio.TimeoutError) as exc:
                sock.close()
                last_error = exc
                logger.debug('tcp_connect_failed', address=address, sockaddr=str(sockaddr), error=repr(exc))
                continue
            except BaseException:
                sock.close()
                raise
            return sock

        raise TransientConnectError(
            f'connecting to {address} failed: {last_error!r}', cause=last_error,
        )
