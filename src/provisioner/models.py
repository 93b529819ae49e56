"""Value objects exchanged between steps and providers."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class TargetDescriptor:
    """The instance a provisioning run operates on.

    ``vpc_id`` is empty for instances outside a virtual network; resource
    types that only make sense inside one (elastic IPs) skip such targets.
    """

    instance_id: str
    vpc_id: str = ''
    public_dns_name: str = ''
    private_ip: str = ''

    @property
    def in_vpc(self) -> bool:
        return bool(self.vpc_id)


@dataclass(frozen=True, slots=True)
class Allocation:
    """Result of a provider ``allocate`` call."""

    allocation_id: str
    public_ip: str = ''


@dataclass(frozen=True, slots=True)
class BindOptions:
    """Options for binding an allocation to a target.

    ``allow_reassociation`` stays False by default: binding a resource that
    is already attached elsewhere must fail instead of silently moving it.
    """

    allow_reassociation: bool = False
