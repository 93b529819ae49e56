"""Resource providers for provisioning runs."""

from .http_provider import HttpResourceProvider
from .inmemory import InMemoryResourceProvider

__all__ = [
    "HttpResourceProvider",
    "InMemoryResourceProvider",
]
