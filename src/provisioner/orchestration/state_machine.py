"""Provisioning run state machine.

Implements the run lifecycle:
  not_started -> running -> completed
  running -> rolling_back -> failed | cancelled

Transitions are pure functions over frozen ``RunStatus`` snapshots so
the runner's bookkeeping stays deterministic and easy to assert on.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from types import MappingProxyType

NOT_STARTED = 'not_started'
RUNNING = 'running'
ROLLING_BACK = 'rolling_back'
COMPLETED = 'completed'
FAILED = 'failed'
CANCELLED = 'cancelled'

TERMINAL_STATES = frozenset({COMPLETED, FAILED, CANCELLED})

ALLOWED_TRANSITIONS = MappingProxyType(
    {
        NOT_STARTED: frozenset({RUNNING}),
        RUNNING: frozenset({COMPLETED, ROLLING_BACK}),
        ROLLING_BACK: frozenset({FAILED, CANCELLED}),
        COMPLETED: frozenset(),
        FAILED: frozenset(),
        CANCELLED: frozenset(),
    }
)


@dataclass(frozen=True, slots=True)
class RunStatus:
    """State snapshot for one provisioning run."""

    run_id: str
    state: str = NOT_STARTED
    current_step: str | None = None
    state_entered_at: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES


class InvalidRunTransition(ValueError):
    """Raised for invalid run state transitions."""

    def __init__(self, from_state: str, to_state: str) -> None:
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f'invalid run transition: {from_state!r} -> {to_state!r}'
        )


def create_run(*, run_id: str, now: datetime | None = None) -> RunStatus:
    """Create a not-yet-started run snapshot."""
    if not run_id:
        raise ValueError('run_id must be non-empty')
    if now is not None:
        _require_aware_datetime(now)
    return RunStatus(run_id=run_id, state_entered_at=now)


def start_run(status: RunStatus, *, now: datetime) -> RunStatus:
    return _transition(status, to_state=RUNNING, now=now)


def enter_step(status: RunStatus, *, step: str, now: datetime) -> RunStatus:
    """Record that ``step`` is about to run. Only legal while running."""
    _require_aware_datetime(now)
    if status.state != RUNNING:
        raise InvalidRunTransition(status.state, RUNNING)
    return replace(status, current_step=step)


def complete_run(status: RunStatus, *, now: datetime) -> RunStatus:
    return _transition(status, to_state=COMPLETED, now=now)


def begin_rollback(status: RunStatus, *, now: datetime) -> RunStatus:
    return _transition(status, to_state=ROLLING_BACK, now=now)


def finish_rollback(
    status: RunStatus,
    *,
    now: datetime,
    cancelled: bool = False,
) -> RunStatus:
    return _transition(
        status,
        to_state=CANCELLED if cancelled else FAILED,
        now=now,
    )


def _transition(
    status: RunStatus,
    *,
    to_state: str,
    now: datetime,
) -> RunStatus:
    _require_aware_datetime(now)
    allowed = ALLOWED_TRANSITIONS.get(status.state, frozenset())
    if to_state not in allowed:
        raise InvalidRunTransition(status.state, to_state)

    return replace(
        status,
        state=to_state,
        state_entered_at=now,
        started_at=status.started_at or now,
        finished_at=now if to_state in TERMINAL_STATES else None,
    )


def _require_aware_datetime(value: datetime) -> None:
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        raise ValueError('now must be timezone-aware')
