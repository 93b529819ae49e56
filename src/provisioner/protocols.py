"""Capability interfaces the orchestrator core depends on.

The core never talks to a cloud API or a socket directly. Concrete
implementations (in-memory fakes for tests, the HTTP gateway provider,
the TCP dialer and SSH session factory) only need to match these
protocols.
"""

from __future__ import annotations

import socket
from typing import Any, Mapping, Protocol, runtime_checkable

from .models import Allocation, BindOptions, TargetDescriptor


@runtime_checkable
class ResourceProvider(Protocol):
    """Remote resource lifecycle operations. Failures raise ``ProviderError``."""

    async def allocate(self, kind: str, params: Mapping[str, Any]) -> Allocation: ...
    async def bind(
        self, allocation_id: str, target: TargetDescriptor, opts: BindOptions,
    ) -> str: ...
    async def unbind(self, binding_id: str) -> None: ...
    async def release(self, allocation_id: str) -> None: ...


@runtime_checkable
class Dialer(Protocol):
    """Open a raw transport connection to ``address`` (``host:port``)."""

    async def dial(self, address: str, timeout: float) -> socket.socket: ...


@runtime_checkable
class Communicator(Protocol):
    """Higher-level session over an established connection."""

    @property
    def closed(self) -> bool: ...

    async def run(self, command: str) -> int: ...
    async def close(self) -> None: ...


@runtime_checkable
class SessionFactory(Protocol):
    """Negotiate a session over a freshly dialed connection.

    ``load_key`` parses the credential once, before any dial, and raises
    ``ValueError`` if it is unusable. ``open`` receives its result.
    """

    def load_key(self, private_key: str) -> Any: ...

    async def open(
        self,
        connection: socket.socket,
        *,
        username: str,
        key: Any,
    ) -> Communicator: ...


@runtime_checkable
class Ui(Protocol):
    """Operator-facing progress sink. Fire-and-forget, never affects control flow."""

    def say(self, message: str) -> None: ...
    def error(self, message: str) -> None: ...
