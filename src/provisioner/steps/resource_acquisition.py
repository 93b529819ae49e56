"""Allocate a remote resource and bind it to the target instance.

Reads:
  ``target.descriptor``, ``provider``, ``ui``

Writes:
  ``resource.allocationId``: id of the allocation
  ``resource.publicIp``: public address, when the provider returns one
  ``resource.bindingId``: id of the association with the target

The allocation id is remembered on the step as soon as ``allocate``
succeeds, so a failed ``bind`` still leaves the allocation to be released
during rollback. A target the resource does not apply to is skipped and
leaves no cleanup obligation.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Mapping, TypeVar

from .. import keys
from ..errors import AllocationError, BindingError, CleanupError
from ..models import BindOptions, TargetDescriptor
from ..observability.logging import get_logger
from ..orchestration.step import Step, StepResult
from ..protocols import ResourceProvider, Ui
from ..state_bag import StateBag

logger = get_logger(__name__)

T = TypeVar('T')

TargetPredicate = Callable[[TargetDescriptor], bool]


def _always(target: TargetDescriptor) -> bool:
    return True


class ResourceAcquisitionStep(Step):
    """Allocate-then-bind one resource of ``kind``, reversed on cleanup."""

    def __init__(
        self,
        kind: str,
        *,
        params: Mapping[str, Any] | None = None,
        applies_to: TargetPredicate = _always,
        allow_reassociation: bool = False,
        call_timeout: float | None = None,
        allocation_key: str = keys.ALLOCATION_ID,
        binding_key: str = keys.BINDING_ID,
        public_ip_key: str = keys.PUBLIC_IP,
        name: str | None = None,
    ) -> None:
        self.kind = kind
        self.params = dict(params or {})
        self.applies_to = applies_to
        self.bind_options = BindOptions(allow_reassociation=allow_reassociation)
        self.call_timeout = call_timeout
        self.allocation_key = allocation_key
        self.binding_key = binding_key
        self.public_ip_key = public_ip_key
        self.name = name or f'acquire-{kind}'

        self.allocation_id: str | None = None
        self.binding_id: str | None = None
        self.public_ip: str | None = None

    async def run(self, bag: StateBag) -> StepResult:
        target = bag.get(keys.TARGET_DESCRIPTOR, TargetDescriptor)
        provider: ResourceProvider = bag.get(keys.PROVIDER)
        ui: Ui = bag.get(keys.UI)

        if not self.applies_to(target):
            logger.info('resource_skipped', kind=self.kind, instance_id=target.instance_id)
            return StepResult.proceed()

        ui.say(f'Allocating a new {self.kind}...')
        logger.debug('allocate_args', kind=self.kind, params=self.params)
        try:
            allocation = await self._bounded(provider.allocate(self.kind, self.params))
        except Exception as exc:
            err = AllocationError(f'Error allocating {self.kind}: {_describe(exc)}', cause=exc)
            ui.error(str(err))
            return StepResult.halt(err)

        self.allocation_id = allocation.allocation_id
        bag.put(self.allocation_key, allocation.allocation_id)
        if allocation.public_ip:
            self.public_ip = allocation.public_ip
            bag.put(self.public_ip_key, allocation.public_ip)
        logger.info(
            'resource_allocated',
            kind=self.kind,
            allocation_id=allocation.allocation_id,
        )

        ui.say(f'Associating {self.kind} {allocation.public_ip or allocation.allocation_id}...')
        try:
            binding_id = await self._bounded(
                provider.bind(allocation.allocation_id, target, self.bind_options)
            )
        except Exception as exc:
            err = BindingError(f'Error associating {self.kind}: {_describe(exc)}', cause=exc)
            ui.error(str(err))
            return StepResult.halt(err)

        self.binding_id = binding_id
        bag.put(self.binding_key, binding_id)
        logger.info('resource_bound', kind=self.kind, binding_id=binding_id)
        return StepResult.proceed()

    async def cleanup(self, bag: StateBag) -> list[CleanupError]:
        if self.binding_id is None and self.allocation_id is None:
            return []

        provider: ResourceProvider = bag.get(keys.PROVIDER)
        ui: Ui = bag.get(keys.UI)
        errors: list[CleanupError] = []

        if self.binding_id is not None:
            ui.say(f'Disassociating the {self.kind}...')
            try:
                await self._bounded(provider.unbind(self.binding_id))
            except Exception as exc:
                errors.append(self._cleanup_failed(ui, 'disassociating', exc))
            else:
                self.binding_id = None
                bag.delete(self.binding_key)

        if self.allocation_id is not None:
            ui.say(f'Releasing the {self.kind}...')
            try:
                await self._bounded(provider.release(self.allocation_id))
            except Exception as exc:
                errors.append(self._cleanup_failed(ui, 'releasing', exc))
            else:
                self.allocation_id = None
                bag.delete(self.allocation_key)
                bag.delete(self.public_ip_key)

        return errors

    def _cleanup_failed(self, ui: Ui, action: str, exc: Exception) -> CleanupError:
        err = CleanupError(
            f'Error {action} {self.kind}: {_describe(exc)}',
            step=self.name,
            cause=exc,
        )
        ui.error(str(err))
        logger.warning('resource_cleanup_failed', kind=self.kind, action=action, error=str(exc))
        return err

    async def _bounded(self, call: Awaitable[T]) -> T:
        if self.call_timeout is None:
            return await call
        return await asyncio.wait_for(call, self.call_timeout)


class ElasticIpStep(ResourceAcquisitionStep):
    """Elastic IP for instances inside a VPC; other instances are skipped."""

    def __init__(self, **kwargs: Any) -> None:
        kwargs.setdefault('params', {'domain': 'vpc'})
        kwargs.setdefault('applies_to', lambda target: target.in_vpc)
        kwargs.setdefault('name', 'allocate-eip')
        super().__init__('eip', **kwargs)


def _describe(exc: BaseException) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return 'provider call timed out'
    return str(exc) or type(exc).__name__
