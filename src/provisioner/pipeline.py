"""Assembly helpers for the standard allocate-and-connect pipeline."""

from __future__ import annotations

import asyncio

from . import keys
from .models import TargetDescriptor
from .observability.logging import configure_logging
from .orchestration.cancellation import CancellationToken
from .orchestration.retry import RetryPolicy, Sleeper
from .orchestration.runner import RunResult, Runner
from .orchestration.step import Step
from .protocols import Dialer, ResourceProvider, SessionFactory, Ui
from .settings import ProvisionerSettings, SettingsError
from .state_bag import StateBag
from .steps import ConnectWithRetryStep, ElasticIpStep
from .transport.ssh import SSHSessionFactory
from .transport.tcp import TcpDialer
from .ui import LoggingUi


def seed_state_bag(
    *,
    target: TargetDescriptor,
    provider: ResourceProvider,
    private_key: str,
    ui: Ui | None = None,
) -> StateBag:
    """Create the bag a run starts from, holding every caller-seeded key."""
    return StateBag(
        {
            keys.TARGET_DESCRIPTOR: target,
            keys.PROVIDER: provider,
            keys.SSH_PRIVATE_KEY: private_key,
            keys.UI: ui or LoggingUi(),
        }
    )


def build_default_steps(
    settings: ProvisionerSettings,
    *,
    dialer: Dialer | None = None,
    session_factory: SessionFactory | None = None,
    sleep: Sleeper = asyncio.sleep,
) -> list[Step]:
    """Elastic IP for VPC targets, then an SSH session with retries."""
    return [
        ElasticIpStep(call_timeout=settings.provider_call_timeout_seconds),
        ConnectWithRetryStep(
            dialer=dialer or TcpDialer(),
            session_factory=session_factory
            or SSHSessionFactory(login_timeout=settings.connect_attempt_timeout_seconds),
            retry_policy=RetryPolicy.from_settings(settings, sleep=sleep),
            port=settings.ssh_port,
            username=settings.ssh_username,
            dial_timeout=settings.connect_attempt_timeout_seconds,
        ),
    ]


async def run_provisioning(
    settings: ProvisionerSettings,
    *,
    target: TargetDescriptor,
    provider: ResourceProvider,
    private_key: str,
    ui: Ui | None = None,
    dialer: Dialer | None = None,
    session_factory: SessionFactory | None = None,
    cancellation: CancellationToken | None = None,
    run_id: str | None = None,
    sleep: Sleeper = asyncio.sleep,
) -> RunResult:
    """Validate ``settings``, configure logging and run the default pipeline.

    Raises:
        SettingsError: ``settings.validate()`` reported problems.
    """
    problems = settings.validate()
    if problems:
        raise SettingsError("; ".join(problems))

    configure_logging(settings)
    bag = seed_state_bag(target=target, provider=provider, private_key=private_key, ui=ui)
    steps = build_default_steps(
        settings, dialer=dialer, session_factory=session_factory, sleep=sleep,
    )
    return await Runner().execute(steps, bag, cancellation=cancellation, run_id=run_id)
