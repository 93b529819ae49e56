"""Runner tests: ordering, reverse-order rollback, cleanup isolation, cancellation."""

from __future__ import annotations

import asyncio

import pytest

from provisioner import keys
from provisioner.errors import (
    AllocationError,
    CleanupError,
    RunCancelledError,
    StepExecutionError,
)
from provisioner.orchestration.cancellation import CancellationToken
from provisioner.orchestration.runner import RunOutcome, Runner
from provisioner.orchestration.step import Step, StepAction, StepResult
from provisioner.state_bag import MissingStateError, StateBag


class RecordingStep(Step):
    """Step that logs run/cleanup calls into a shared journal."""

    def __init__(
        self,
        name: str,
        journal: list[tuple[str, str]],
        *,
        halt: bool = False,
        raise_in_run: Exception | None = None,
        cleanup_raises: Exception | None = None,
        cleanup_reports: list[CleanupError] | None = None,
        on_run=None,
    ) -> None:
        self.name = name
        self.journal = journal
        self.halt = halt
        self.raise_in_run = raise_in_run
        self.cleanup_raises = cleanup_raises
        self.cleanup_reports = cleanup_reports or []
        self.on_run = on_run

    async def run(self, bag: StateBag) -> StepResult:
        self.journal.append(('run', self.name))
        if self.on_run is not None:
            await self.on_run(bag)
        if self.raise_in_run is not None:
            raise self.raise_in_run
        bag.put(f'out.{self.name}', True)
        if self.halt:
            return StepResult.halt(AllocationError(f'{self.name} failed'))
        return StepResult.proceed()

    async def cleanup(self, bag: StateBag) -> list[CleanupError]:
        self.journal.append(('cleanup', self.name))
        if self.cleanup_raises is not None:
            raise self.cleanup_raises
        return list(self.cleanup_reports)


def _cleanups(journal):
    return [name for op, name in journal if op == 'cleanup']


def _runs(journal):
    return [name for op, name in journal if op == 'run']


# ── Step result contract ─────────────────────────────────────────────


class TestStepResult:
    def test_halt_requires_error(self):
        with pytest.raises(ValueError):
            StepResult(StepAction.HALT)

    def test_continue_rejects_error(self):
        with pytest.raises(ValueError):
            StepResult(StepAction.CONTINUE, AllocationError('x'))

    def test_constructors(self):
        assert StepResult.proceed().action is StepAction.CONTINUE
        halted = StepResult.halt(AllocationError('x'))
        assert halted.halted
        assert halted.error.code == 'allocation_failed'


# ── Happy path ───────────────────────────────────────────────────────


class TestCompletedRun:
    @pytest.mark.asyncio
    async def test_runs_every_step_in_order(self):
        journal: list = []
        steps = [RecordingStep(n, journal) for n in ('a', 'b', 'c')]

        result = await Runner().execute(steps, StateBag())

        assert result.outcome is RunOutcome.COMPLETED
        assert result.success is True
        assert result.error is None
        assert _runs(journal) == ['a', 'b', 'c']
        assert result.entered_steps == ('a', 'b', 'c')
        assert result.status.state == 'completed'

    @pytest.mark.asyncio
    async def test_success_never_cleans_up(self):
        journal: list = []
        await Runner().execute([RecordingStep('a', journal)], StateBag())
        assert _cleanups(journal) == []

    @pytest.mark.asyncio
    async def test_steps_share_the_bag(self):
        journal: list = []
        seen: list[bool] = []

        async def read_previous(bag):
            seen.append(bag.get('out.a'))

        steps = [RecordingStep('a', journal), RecordingStep('b', journal, on_run=read_previous)]
        bag = StateBag()
        await Runner().execute(steps, bag)
        assert seen == [True]
        assert bag.get('out.b') is True

    @pytest.mark.asyncio
    async def test_empty_pipeline_completes(self):
        result = await Runner().execute([], StateBag())
        assert result.outcome is RunOutcome.COMPLETED
        assert result.entered_steps == ()

    @pytest.mark.asyncio
    async def test_seeds_cancellation_token(self):
        token = CancellationToken()
        bag = StateBag()
        await Runner().execute([], bag, cancellation=token)
        assert bag.get(keys.CANCELLATION) is token


# ── Rollback ─────────────────────────────────────────────────────────


class TestRollback:
    @pytest.mark.asyncio
    @pytest.mark.parametrize('halt_at', [1, 2, 3, 4])
    async def test_cleans_up_entered_steps_in_reverse(self, halt_at):
        journal: list = []
        steps = [
            RecordingStep(f's{i}', journal, halt=(i == halt_at))
            for i in range(1, 5)
        ]

        result = await Runner().execute(steps, StateBag())

        assert result.outcome is RunOutcome.FAILED
        assert _runs(journal) == [f's{i}' for i in range(1, halt_at + 1)]
        assert _cleanups(journal) == [f's{i}' for i in range(halt_at, 0, -1)]
        # Every cleanup happens after every run.
        last_run = max(i for i, (op, _) in enumerate(journal) if op == 'run')
        first_cleanup = min(i for i, (op, _) in enumerate(journal) if op == 'cleanup')
        assert last_run < first_cleanup

    @pytest.mark.asyncio
    async def test_halting_error_is_primary(self):
        journal: list = []
        steps = [RecordingStep('a', journal), RecordingStep('b', journal, halt=True)]
        bag = StateBag()

        result = await Runner().execute(steps, bag)

        assert isinstance(result.error, AllocationError)
        assert str(result.error) == 'b failed'
        assert bag.get(keys.RUN_ERROR) is result.error
        assert result.status.state == 'failed'
        assert result.status.finished_at is not None

    @pytest.mark.asyncio
    async def test_raising_cleanup_does_not_stop_rollback(self):
        journal: list = []
        steps = [
            RecordingStep('s1', journal),
            RecordingStep('s2', journal, cleanup_raises=RuntimeError('teardown exploded')),
            RecordingStep('s3', journal, halt=True),
        ]

        result = await Runner().execute(steps, StateBag())

        assert _cleanups(journal) == ['s3', 's2', 's1']
        assert isinstance(result.error, AllocationError)
        assert len(result.cleanup_errors) == 1
        assert result.cleanup_errors[0].step == 's2'
        assert isinstance(result.cleanup_errors[0].cause, RuntimeError)

    @pytest.mark.asyncio
    async def test_reported_cleanup_errors_are_attached(self):
        journal: list = []
        reported = CleanupError('release failed', step='s1')
        steps = [
            RecordingStep('s1', journal, cleanup_reports=[reported]),
            RecordingStep('s2', journal, halt=True),
        ]

        result = await Runner().execute(steps, StateBag())

        assert result.cleanup_errors == (reported,)
        assert isinstance(result.error, AllocationError)

    @pytest.mark.asyncio
    async def test_crashing_step_becomes_halt(self):
        journal: list = []
        steps = [
            RecordingStep('s1', journal),
            RecordingStep('s2', journal, raise_in_run=KeyError('boom')),
            RecordingStep('s3', journal),
        ]

        result = await Runner().execute(steps, StateBag())

        assert result.outcome is RunOutcome.FAILED
        assert isinstance(result.error, StepExecutionError)
        assert result.error.step == 's2'
        assert _runs(journal) == ['s1', 's2']
        assert _cleanups(journal) == ['s2', 's1']

    @pytest.mark.asyncio
    async def test_missing_state_rolls_back_then_raises(self):
        journal: list = []

        async def needs_target(bag):
            bag.get(keys.TARGET_DESCRIPTOR)

        steps = [
            RecordingStep('s1', journal),
            RecordingStep('s2', journal, on_run=needs_target),
        ]

        with pytest.raises(MissingStateError):
            await Runner().execute(steps, StateBag())
        assert _cleanups(journal) == ['s2', 's1']


# ── Cancellation ─────────────────────────────────────────────────────


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_between_steps(self):
        journal: list = []
        token = CancellationToken()

        async def cancel(bag):
            token.cancel('operator interrupt')

        steps = [
            RecordingStep('s1', journal),
            RecordingStep('s2', journal, on_run=cancel),
            RecordingStep('s3', journal),
        ]

        result = await Runner().execute(steps, StateBag(), cancellation=token)

        assert result.outcome is RunOutcome.CANCELLED
        assert isinstance(result.error, RunCancelledError)
        assert 'operator interrupt' in str(result.error)
        assert _runs(journal) == ['s1', 's2']
        assert _cleanups(journal) == ['s2', 's1']
        assert result.status.state == 'cancelled'

    @pytest.mark.asyncio
    async def test_cancelled_before_start_runs_nothing(self):
        journal: list = []
        token = CancellationToken()
        token.cancel()

        result = await Runner().execute(
            [RecordingStep('s1', journal)], StateBag(), cancellation=token,
        )

        assert result.outcome is RunOutcome.CANCELLED
        assert journal == []

    @pytest.mark.asyncio
    async def test_task_cancellation_inside_step_rolls_back(self):
        journal: list = []

        async def interrupted(bag):
            raise asyncio.CancelledError()

        steps = [
            RecordingStep('s1', journal),
            RecordingStep('s2', journal, on_run=interrupted),
        ]

        bag = StateBag()
        with pytest.raises(asyncio.CancelledError):
            await Runner().execute(steps, bag)

        assert _cleanups(journal) == ['s2', 's1']
        assert isinstance(bag.get(keys.RUN_ERROR), RunCancelledError)

    @pytest.mark.asyncio
    async def test_caller_timeout_bounds_run_after_rollback(self):
        journal: list = []

        async def hang(bag):
            await asyncio.sleep(30)

        steps = [
            RecordingStep('s1', journal),
            RecordingStep('s2', journal, on_run=hang),
            RecordingStep('s3', journal),
        ]

        with pytest.raises(TimeoutError):
            async with asyncio.timeout(0.05):
                await Runner().execute(steps, StateBag())

        assert _runs(journal) == ['s1', 's2']
        assert _cleanups(journal) == ['s2', 's1']

    @pytest.mark.asyncio
    async def test_task_cancel_propagates_to_awaiter(self):
        journal: list = []
        entered = asyncio.Event()

        async def hang(bag):
            entered.set()
            await asyncio.sleep(30)

        task = asyncio.create_task(
            Runner().execute(
                [RecordingStep('s1', journal), RecordingStep('s2', journal, on_run=hang)],
                StateBag(),
            )
        )
        await entered.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert task.cancelled()
        assert _cleanups(journal) == ['s2', 's1']

    @pytest.mark.asyncio
    async def test_second_cancel_does_not_abort_rollback(self):
        journal: list = []
        entered = asyncio.Event()
        cleanup_started = asyncio.Event()
        gate = asyncio.Event()

        class SlowCleanupStep(RecordingStep):
            async def cleanup(self, bag):
                cleanup_started.set()
                await gate.wait()
                return await super().cleanup(bag)

        async def hang(bag):
            entered.set()
            await asyncio.sleep(30)

        task = asyncio.create_task(
            Runner().execute(
                [SlowCleanupStep('s1', journal), RecordingStep('s2', journal, on_run=hang)],
                StateBag(),
            )
        )
        await entered.wait()
        task.cancel()
        await cleanup_started.wait()
        task.cancel()
        await asyncio.sleep(0)
        gate.set()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert _cleanups(journal) == ['s2', 's1']

    @pytest.mark.asyncio
    async def test_cancel_during_failure_rollback_still_cleans_up(self):
        journal: list = []
        cleanup_started = asyncio.Event()
        gate = asyncio.Event()

        class SlowCleanupStep(RecordingStep):
            async def cleanup(self, bag):
                cleanup_started.set()
                await gate.wait()
                return await super().cleanup(bag)

        task = asyncio.create_task(
            Runner().execute(
                [SlowCleanupStep('s1', journal), RecordingStep('s2', journal, halt=True)],
                StateBag(),
            )
        )
        await cleanup_started.wait()
        task.cancel()
        await asyncio.sleep(0)
        gate.set()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert _cleanups(journal) == ['s2', 's1']

    @pytest.mark.asyncio
    async def test_step_halting_with_cancellation_is_cancelled(self):
        class CancelledStep(Step):
            name = 'waits'

            async def run(self, bag):
                return StepResult.halt(RunCancelledError('interrupted during retry'))

            async def cleanup(self, bag):
                return []

        result = await Runner().execute([CancelledStep()], StateBag())
        assert result.outcome is RunOutcome.CANCELLED
