"""Step contract, runner, retry policy and run state machine."""

from .cancellation import CancellationToken
from .retry import RetryPolicy
from .runner import RunOutcome, RunResult, Runner
from .state_machine import (
    ALLOWED_TRANSITIONS,
    InvalidRunTransition,
    RunStatus,
    begin_rollback,
    complete_run,
    create_run,
    enter_step,
    finish_rollback,
    start_run,
)
from .step import Step, StepAction, StepResult

__all__ = [
    'ALLOWED_TRANSITIONS',
    'CancellationToken',
    'InvalidRunTransition',
    'RetryPolicy',
    'RunOutcome',
    'RunResult',
    'RunStatus',
    'Runner',
    'Step',
    'StepAction',
    'StepResult',
    'begin_rollback',
    'complete_run',
    'create_run',
    'enter_step',
    'finish_rollback',
    'start_run',
]
