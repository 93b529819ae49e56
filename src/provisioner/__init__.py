"""Step-based provisioning orchestrator.

Runs an ordered list of steps against a shared StateBag and, when a step
halts or the run is cancelled, compensates every entered step in reverse
order.
"""

from .errors import (
    AllocationError,
    BindingError,
    CleanupError,
    ProviderError,
    ProvisioningError,
    RetryExhaustedError,
    RunCancelledError,
    SessionSetupError,
    StepExecutionError,
    TransientConnectError,
)
from .models import Allocation, BindOptions, TargetDescriptor
from .orchestration import (
    CancellationToken,
    RetryPolicy,
    RunOutcome,
    RunResult,
    Runner,
    Step,
    StepAction,
    StepResult,
)
from .pipeline import build_default_steps, run_provisioning, seed_state_bag
from .settings import ProvisionerSettings, SettingsError
from .state_bag import MissingStateError, StateBag, StateTypeError
from .steps import ConnectWithRetryStep, ElasticIpStep, ResourceAcquisitionStep

__all__ = [
    'Allocation',
    'AllocationError',
    'BindOptions',
    'BindingError',
    'CancellationToken',
    'CleanupError',
    'ConnectWithRetryStep',
    'ElasticIpStep',
    'MissingStateError',
    'ProviderError',
    'ProvisionerSettings',
    'ProvisioningError',
    'ResourceAcquisitionStep',
    'RetryExhaustedError',
    'RetryPolicy',
    'RunCancelledError',
    'SessionSetupError',
    'RunOutcome',
    'RunResult',
    'Runner',
    'SettingsError',
    'StateBag',
    'StateTypeError',
    'Step',
    'StepAction',
    'StepExecutionError',
    'StepResult',
    'TargetDescriptor',
    'TransientConnectError',
    'build_default_steps',
    'run_provisioning',
    'seed_state_bag',
]
