"""Step contract: a forward action plus its compensating cleanup.

A step reports the outcome of ``run`` as data, not as an exception: the
runner decides whether to continue or roll back by looking at the
returned ``StepResult``.
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Sequence

from ..errors import CleanupError, ProvisioningError
from ..state_bag import StateBag


class StepAction(str, enum.Enum):
    CONTINUE = 'continue'
    HALT = 'halt'


@dataclass(frozen=True, slots=True)
class StepResult:
    """Outcome of ``Step.run``. A halt always carries its error."""

    action: StepAction
    error: ProvisioningError | None = None

    def __post_init__(self) -> None:
        if self.action is StepAction.HALT and self.error is None:
            raise ValueError('a halting step result requires an error')
        if self.action is StepAction.CONTINUE and self.error is not None:
            raise ValueError('a continuing step result cannot carry an error')

    @classmethod
    def proceed(cls) -> StepResult:
        return cls(StepAction.CONTINUE)

    @classmethod
    def halt(cls, error: ProvisioningError) -> StepResult:
        return cls(StepAction.HALT, error)

    @property
    def halted(self) -> bool:
        return self.action is StepAction.HALT


class Step(ABC):
    """Base class for provisioning steps.

    ``run`` is invoked at most once per run. ``cleanup`` is invoked at most
    once, only during rollback, and only if ``run`` was entered, including
    when ``run`` itself halted. Implementations keep whatever identifiers
    they allocated on the instance so ``cleanup`` knows what to undo, and
    must make ``cleanup`` a no-op when nothing was allocated.
    """

    name: str = 'step'

    @abstractmethod
    async def run(self, bag: StateBag) -> StepResult:
        """Perform the forward action."""

    @abstractmethod
    async def cleanup(self, bag: StateBag) -> Sequence[CleanupError]:
        """Undo the forward action, best effort.

        Returns the teardown failures that were swallowed so the runner can
        attach them to the run result.
        """

    def __repr__(self) -> str:
        return f'<{type(self).__name__} {self.name!r}>'
