"""Transport dialers and session factories."""

from .inmemory import InMemoryDialer, InMemorySessionFactory
from .ssh import SSHCommunicator, SSHSessionFactory
from .tcp import TcpDialer, split_address

__all__ = [
    'InMemoryDialer',
    'InMemorySessionFactory',
    'SSHCommunicator',
    'SSHSessionFactory',
    'TcpDialer',
    'split_address',
]
