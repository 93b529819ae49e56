"""In-memory resource provider for local development and tests.

Tracks every call in order so tests can assert exactly which provider
operations a run performed, and can be told to fail any operation.
"""

from __future__ import annotations

import itertools
from typing import Any, Mapping

from ..errors import ProviderError, ProviderNotFoundError
from ..models import Allocation, BindOptions, TargetDescriptor


class InMemoryResourceProvider:
    """Test resource provider that tracks calls."""

    def __init__(
        self,
        *,
        allocation_ids: list[str] | None = None,
        binding_ids: list[str] | None = None,
        public_ip: str = '203.0.113.10',
        allocate_fails: bool = False,
        bind_fails: bool = False,
        unbind_fails: bool = False,
        release_fails: bool = False,
    ) -> None:
        self._allocation_ids = iter(allocation_ids or [])
        self._binding_ids = iter(binding_ids or [])
        self._counter = itertools.count(1)
        self.public_ip = public_ip
        self.allocate_fails = allocate_fails
        self.bind_fails = bind_fails
        self.unbind_fails = unbind_fails
        self.release_fails = release_fails

        self.calls: list[tuple[str, str]] = []
        self.allocations: dict[str, dict[str, Any]] = {}
        self.bindings: dict[str, str] = {}

    async def allocate(self, kind: str, params: Mapping[str, Any]) -> Allocation:
        self.calls.append(('allocate', kind))
        if self.allocate_fails:
            raise ProviderError('AddressLimitExceeded: too many addresses', status_code=400)
        allocation_id = next(self._allocation_ids, None) or f'alloc-{next(self._counter)}'
        self.allocations[allocation_id] = {'kind': kind, 'params': dict(params)}
        return Allocation(allocation_id=allocation_id, public_ip=self.public_ip)

    async def bind(
        self, allocation_id: str, target: TargetDescriptor, opts: BindOptions,
    ) -> str:
        self.calls.append(('bind', allocation_id))
        if self.bind_fails:
            raise ProviderError('Resource.AlreadyAssociated', status_code=409)
        if allocation_id not in self.allocations:
            raise ProviderNotFoundError(f'unknown allocation {allocation_id}')
        if not opts.allow_reassociation and allocation_id in self.bindings.values():
            raise ProviderError('Resource.AlreadyAssociated', status_code=409)
        binding_id = next(self._binding_ids, None) or f'bind-{next(self._counter)}'
        self.bindings[binding_id] = allocation_id
        return binding_id

    async def unbind(self, binding_id: str) -> None:
        self.calls.append(('unbind', binding_id))
        if self.unbind_fails:
            raise ProviderError('InvalidAssociationID.NotFound', status_code=400)
        self.bindings.pop(binding_id, None)

    async def release(self, allocation_id: str) -> None:
        self.calls.append(('release', allocation_id))
        if self.release_fails:
            raise ProviderError('InvalidAllocationID.NotFound', status_code=400)
        self.allocations.pop(allocation_id, None)

    def calls_to(self, operation: str) -> list[str]:
        return [arg for op, arg in self.calls if op == operation]
