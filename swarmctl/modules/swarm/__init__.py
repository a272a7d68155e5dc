"""
Docker Swarm bootstrap.

This package drives a set of freshly provisioned hosts to a single swarm:

- installer: container runtime installation on every host
- leader: swarm initialization on the leader
- credentials: join token retrieval from the leader
- join: manager and worker joins
- orchestrator: the staged pipeline tying the above together
- status: read-only progress probe
- config: configuration loading with environment overrides
"""

from .models import (
    Role,
    Operation,
    CredentialClass,
    Host,
    JoinCredential,
    Credentials,
    JoinStatus,
    HostResult,
    JoinReport,
    BootstrapReport,
)

__all__ = [
    'Role',
    'Operation',
    'CredentialClass',
    'Host',
    'JoinCredential',
    'Credentials',
    'JoinStatus',
    'HostResult',
    'JoinReport',
    'BootstrapReport',
]

__version__ = "0.1.0"
