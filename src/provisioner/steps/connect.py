"""Connect to a freshly provisioned instance, retrying until its network is up.

Reads:
  ``target.descriptor``, ``ssh.privateKey``, ``ui``
  ``resource.publicIp`` (optional, preferred over the target's DNS name)
  ``run.cancellation`` (optional)

Writes:
  ``session.handle``: the established ``Communicator``

An attempt is a dial followed by a session handshake. A handshake that
fails after the transport connected counts as a failed attempt, the raw
connection is closed and the next attempt starts from a fresh dial.
An unparseable private key is not retried: the step halts before dialing.
"""

from __future__ import annotations

import asyncio
import socket

from .. import keys
from ..errors import (
    CleanupError,
    RetryExhaustedError,
    RunCancelledError,
    SessionSetupError,
    TransientConnectError,
)
from ..models import TargetDescriptor
from ..observability.logging import get_logger
from ..observability.metrics import CONNECT_ATTEMPTS_TOTAL
from ..orchestration.retry import RetryPolicy
from ..orchestration.step import Step, StepResult
from ..protocols import Communicator, Dialer, SessionFactory, Ui
from ..state_bag import MissingStateError, StateBag

logger = get_logger(__name__)


class ConnectWithRetryStep(Step):
    """Dial and handshake with bounded retries, publishing the session."""

    def __init__(
        self,
        *,
        dialer: Dialer,
        session_factory: SessionFactory,
        retry_policy: RetryPolicy | None = None,
        port: int = 22,
        username: str = 'ubuntu',
        dial_timeout: float = 10.0,
        address_key: str | None = None,
        name: str = 'connect-ssh',
    ) -> None:
        self.dialer = dialer
        self.session_factory = session_factory
        self.retry_policy = retry_policy or RetryPolicy()
        self.port = port
        self.username = username
        self.dial_timeout = dial_timeout
        self.address_key = address_key
        self.name = name

        self.connection: socket.socket | None = None
        self.communicator: Communicator | None = None

    async def run(self, bag: StateBag) -> StepResult:
        target = bag.get(keys.TARGET_DESCRIPTOR, TargetDescriptor)
        private_key = bag.get(keys.SSH_PRIVATE_KEY, str)
        ui: Ui = bag.get(keys.UI)
        cancellation = bag.find(keys.CANCELLATION)

        address = f'{self._resolve_host(bag, target)}:{self.port}'

        try:
            key = self.session_factory.load_key(private_key)
        except ValueError as exc:
            err = SessionSetupError(f'Error setting up SSH config: {exc}', cause=exc)
            ui.error(str(err))
            return StepResult.halt(err)

        async def attempt(number: int) -> Communicator:
            logger.info('connect_attempt', address=address, attempt=number)
            try:
                conn = await self.dialer.dial(address, self.dial_timeout)
            except TransientConnectError:
                CONNECT_ATTEMPTS_TOTAL.labels(result='dial_failed').inc()
                raise
            except OSError as exc:
                CONNECT_ATTEMPTS_TOTAL.labels(result='dial_failed').inc()
                raise TransientConnectError(
                    f'dial {address} failed: {exc}', cause=exc,
                ) from exc

            try:
                comm = await self.session_factory.open(
                    conn, username=self.username, key=key,
                )
            except asyncio.CancelledError:
                conn.close()
                raise
            except Exception as exc:
                conn.close()
                CONNECT_ATTEMPTS_TOTAL.labels(result='handshake_failed').inc()
                raise TransientConnectError(
                    f'session handshake with {address} failed: {exc}', cause=exc,
                ) from exc

            self.connection = conn
            CONNECT_ATTEMPTS_TOTAL.labels(result='success').inc()
            return comm

        ui.say('Connecting to the instance via SSH...')
        try:
            communicator = await self.retry_policy.call(attempt, cancellation=cancellation)
        except RetryExhaustedError as exc:
            ui.error(f'Error connecting to SSH: {exc.cause}')
            return StepResult.halt(exc)
        except RunCancelledError as exc:
            return StepResult.halt(exc)

        self.communicator = communicator
        bag.put(keys.SESSION_HANDLE, communicator)
        logger.info('connected', address=address)
        return StepResult.proceed()

    async def cleanup(self, bag: StateBag) -> list[CleanupError]:
        errors: list[CleanupError] = []

        if self.communicator is not None:
            try:
                if not self.communicator.closed:
                    await self.communicator.close()
            except Exception as exc:
                logger.warning('session_close_failed', error=str(exc))
                errors.append(
                    CleanupError(
                        f'Error closing session: {exc}', step=self.name, cause=exc,
                    )
                )
            self.communicator = None
            bag.delete(keys.SESSION_HANDLE)

        if self.connection is not None:
            try:
                self.connection.close()
            except OSError as exc:
                logger.warning('connection_close_failed', error=str(exc))
                errors.append(
                    CleanupError(
                        f'Error closing connection: {exc}', step=self.name, cause=exc,
                    )
                )
            self.connection = None

        return errors

    def _resolve_host(self, bag: StateBag, target: TargetDescriptor) -> str:
        if self.address_key is not None:
            return bag.get(self.address_key, str)
        host = bag.find(keys.PUBLIC_IP) or target.public_dns_name or target.private_ip
        if not host:
            raise MissingStateError(keys.PUBLIC_IP)
        return host
