"""Provisioning runner: drives an ordered list of steps over one StateBag.

For each step the runner:
  1. Checks the run's cancellation token.
  2. Records the step as entered (before ``run``, so a step that fails
     halfway through still gets its ``cleanup``).
  3. Awaits ``run`` and inspects the returned ``StepResult``.

On the first halt (or a cancellation) it stops moving forward and calls
``cleanup`` on every entered step in strict reverse order of entry. A
failing cleanup is recorded and never stops the rollback of earlier
steps, and never replaces the primary error.

Cancellation comes in two forms. A ``CancellationToken`` set by an
operator ends the run with a ``CANCELLED`` result. A native task
cancellation (``task.cancel()``, an enclosing ``asyncio.timeout``) rolls
back and then propagates ``CancelledError`` to the caller. The rollback
runs shielded in both cases, so a further cancel arriving mid-cleanup
cannot strand the resources of earlier steps.
"""

from __future__ import annotations

import asyncio
import enum
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Sequence

from .. import keys
from ..errors import (
    CleanupError,
    ProvisioningError,
    RunCancelledError,
    StepExecutionError,
)
from ..observability.logging import bind_run_id, get_logger
from ..observability.metrics import (
    CLEANUP_FAILURES_TOTAL,
    RUNS_TOTAL,
    STEP_DURATION_SECONDS,
)
from ..state_bag import MissingStateError, StateBag, StateTypeError
from .cancellation import CancellationToken
from .state_machine import (
    RunStatus,
    begin_rollback,
    complete_run,
    create_run,
    enter_step,
    finish_rollback,
    start_run,
)
from .step import Step, StepResult

logger = get_logger(__name__)


class RunOutcome(str, enum.Enum):
    COMPLETED = 'completed'
    FAILED = 'failed'
    CANCELLED = 'cancelled'


# ── Run result ───────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class RunResult:
    """Outcome of a provisioning run.

    ``error`` is the primary cause (the first halt, or the cancellation).
    ``cleanup_errors`` are advisory and never replace it.
    """

    outcome: RunOutcome
    status: RunStatus
    error: ProvisioningError | None = None
    cleanup_errors: tuple[CleanupError, ...] = ()
    entered_steps: tuple[str, ...] = field(default_factory=tuple)

    @property
    def success(self) -> bool:
        return self.outcome is RunOutcome.COMPLETED


# ── Runner ───────────────────────────────────────────────────────────


class Runner:
    """Executes steps strictly in caller order, rolling back on halt."""

    async def execute(
        self,
        steps: Sequence[Step],
        bag: StateBag,
        *,
        cancellation: CancellationToken | None = None,
        run_id: str | None = None,
    ) -> RunResult:
        """Run ``steps`` against ``bag`` and return the final outcome.

        ``MissingStateError`` and ``StateTypeError`` raised by a step are
        wiring bugs, not provisioning failures: the runner rolls back what
        it entered and then re-raises them.
        """
        run_id = run_id or uuid.uuid4().hex
        cancellation = cancellation or CancellationToken()
        bag.put(keys.CANCELLATION, cancellation)

        with bind_run_id(run_id):
            status = start_run(create_run(run_id=run_id, now=_now()), now=_now())
            logger.info('run_started', steps=[s.name for s in steps])

            entered: list[Step] = []
            error: ProvisioningError | None = None
            cancelled = False
            wiring_error: Exception | None = None
            interrupt: asyncio.CancelledError | None = None

            for step in steps:
                if cancellation.cancelled:
                    error = RunCancelledError(cancellation.reason or 'cancelled')
                    cancelled = True
                    break

                status = enter_step(status, step=step.name, now=_now())
                entered.append(step)
                logger.info('step_entered', step=step.name)

                started = time.monotonic()
                try:
                    result = await step.run(bag)
                except asyncio.CancelledError as exc:
                    error = RunCancelledError(f'run cancelled during step {step.name!r}')
                    cancelled = True
                    interrupt = exc
                    break
                except RunCancelledError as exc:
                    error = exc
                    cancelled = True
                    break
                except (MissingStateError, StateTypeError) as exc:
                    wiring_error = exc
                    error = StepExecutionError(str(exc), step=step.name, cause=exc)
                    break
                except Exception as exc:
                    logger.exception('step_crashed', step=step.name)
                    result = StepResult.halt(
                        StepExecutionError(
                            f'step {step.name!r} raised {type(exc).__name__}: {exc}',
                            step=step.name,
                            cause=exc,
                        )
                    )
                finally:
                    elapsed = time.monotonic() - started

                STEP_DURATION_SECONDS.labels(
                    step=step.name, action=result.action.value,
                ).observe(elapsed)

                if result.halted:
                    error = result.error
                    if isinstance(error, RunCancelledError):
                        cancelled = True
                    logger.warning(
                        'step_halted',
                        step=step.name,
                        error_code=error.code,
                        error=str(error),
                    )
                    break

            if error is None:
                status = complete_run(status, now=_now())
                RUNS_TOTAL.labels(outcome=RunOutcome.COMPLETED.value).inc()
                logger.info('run_completed')
                return RunResult(
                    outcome=RunOutcome.COMPLETED,
                    status=status,
                    entered_steps=tuple(s.name for s in entered),
                )

            bag.put(keys.RUN_ERROR, error)
            status = begin_rollback(status, now=_now())
            cleanup_errors, interrupted = await self._shielded_rollback(entered, bag)
            if interrupted and interrupt is None:
                interrupt = asyncio.CancelledError()
            cancelled = cancelled or interrupt is not None
            status = finish_rollback(status, now=_now(), cancelled=cancelled)

            outcome = RunOutcome.CANCELLED if cancelled else RunOutcome.FAILED
            RUNS_TOTAL.labels(outcome=outcome.value).inc()
            logger.info(
                'run_finished',
                outcome=outcome.value,
                error_code=error.code,
                cleanup_failures=len(cleanup_errors),
            )

            if interrupt is not None:
                raise interrupt
            if wiring_error is not None:
                raise wiring_error

            return RunResult(
                outcome=outcome,
                status=status,
                error=error,
                cleanup_errors=tuple(cleanup_errors),
                entered_steps=tuple(s.name for s in entered),
            )

    async def _shielded_rollback(
        self,
        entered: list[Step],
        bag: StateBag,
    ) -> tuple[list[CleanupError], bool]:
        """Run the rollback to completion even if this task is cancelled.

        Returns the cleanup errors and whether a cancel arrived while the
        rollback was in progress.
        """
        rollback = asyncio.ensure_future(self._rollback(entered, bag))
        interrupted = False
        while True:
            try:
                return await asyncio.shield(rollback), interrupted
            except asyncio.CancelledError:
                if rollback.cancelled():
                    raise
                interrupted = True
                logger.warning('rollback_cancel_deferred')

    async def _rollback(
        self,
        entered: list[Step],
        bag: StateBag,
    ) -> list[CleanupError]:
        """Clean up entered steps last-in first-out, isolating failures."""
        errors: list[CleanupError] = []
        for step in reversed(entered):
            logger.info('step_cleanup', step=step.name)
            try:
                reported = await step.cleanup(bag)
            except Exception as exc:
                logger.exception('step_cleanup_crashed', step=step.name)
                reported = [
                    CleanupError(
                        f'cleanup of {step.name!r} raised {type(exc).__name__}: {exc}',
                        step=step.name,
                        cause=exc,
                    )
                ]
            for err in reported or ():
                CLEANUP_FAILURES_TOTAL.labels(step=step.name).inc()
                errors.append(err)
        return errors


def _now() -> datetime:
    """UTC-aware now for state transitions."""
    return datetime.now(timezone.utc)
