"""
Bootstrap building blocks: host registry, remote execution and idempotency guard.
"""
from .registry import load as load_registry
from .ssh import RemoteExecutor, SSHExecutor, CommandResult

__all__ = [
    'load_registry',
    'RemoteExecutor',
    'SSHExecutor',
    'CommandResult',
]
