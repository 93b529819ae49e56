"""Concrete provisioning steps."""

from .connect import ConnectWithRetryStep
from .resource_acquisition import ElasticIpStep, ResourceAcquisitionStep

__all__ = [
    'ConnectWithRetryStep',
    'ElasticIpStep',
    'ResourceAcquisitionStep',
]
