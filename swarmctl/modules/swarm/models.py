"""Data models for swarm bootstrap."""
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Role(str, Enum):
    """Intended role of a host in the swarm."""
    LEADER = 'leader'
    MANAGER = 'manager'
    WORKER = 'worker'


class Operation(str, Enum):
    """Mutating steps tracked by the idempotency guard."""
    INSTALL = 'install'
    INIT = 'init'
    JOIN = 'join'


class CredentialClass(str, Enum):
    """Join token classes minted by the swarm leader."""
    MANAGER = 'manager'
    WORKER = 'worker'


class JoinStatus(str, Enum):
    JOINED = 'joined'
    ALREADY_JOINED = 'already_joined'
    FAILED = 'failed'


class StepStatus(str, Enum):
    """Outcome of install and init steps."""
    DONE = 'done'
    ALREADY_DONE = 'already_done'
    FAILED = 'failed'


@dataclass(frozen=True)
class Host:
    """A host declared in the registry."""
    identity: str
    address: str
    role: Role
    ssh_user: Optional[str] = None
    ssh_port: Optional[int] = None
    ssh_key_path: Optional[str] = None

    @property
    def is_leader(self) -> bool:
        return self.role == Role.LEADER

    def __str__(self) -> str:
        return f"{self.identity} ({self.address})"


@dataclass
class OperationRecord:
    """Bookkeeping for one (host, operation) pair."""
    host: str
    operation: Operation
    completed: bool = False
    evidence: str = 'local'


@dataclass(frozen=True)
class JoinCredential:
    """An opaque, role-scoped swarm join token."""
    credential_class: CredentialClass
    secret: str = field(repr=False)
    issued_by: str

    def __repr__(self) -> str:
        return (
            f"JoinCredential(credential_class={self.credential_class.value!r}, "
            f"secret='***', issued_by={self.issued_by!r})"
        )


@dataclass(frozen=True)
class Credentials:
    """The pair of join credentials read from the leader for one run.

    Lives in memory only and is passed by value through the pipeline.
    """
    manager: JoinCredential
    worker: JoinCredential
    leader_address: str
    cluster_id: Optional[str] = None

    def for_role(self, role: Role) -> JoinCredential:
        """Return the credential a host of the given role must use."""
        if role == Role.MANAGER:
            return self.manager
        if role == Role.WORKER:
            return self.worker
        raise ValueError(f"No join credential for role '{role.value}'")

    def secrets(self) -> List[str]:
        return [self.manager.secret, self.worker.secret]


@dataclass
class HostResult:
    """Join outcome for a single non-leader host."""
    host: Host
    status: JoinStatus
    credential_class: Optional[CredentialClass] = None
    reason: Optional[str] = None
    step: str = 'join'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'host': self.host.identity,
            'address': self.host.address,
            'role': self.host.role.value,
            'status': self.status.value,
            'credential': self.credential_class.value if self.credential_class else None,
            'reason': self.reason,
            'step': self.step,
        }


@dataclass
class JoinReport:
    """Per-host join results, in registry order."""
    results: List[HostResult] = field(default_factory=list)

    def get(self, identity: str) -> Optional[HostResult]:
        return next((r for r in self.results if r.host.identity == identity), None)

    @property
    def succeeded(self) -> List[HostResult]:
        return [r for r in self.results if r.status != JoinStatus.FAILED]

    @property
    def failed(self) -> List[HostResult]:
        return [r for r in self.results if r.status == JoinStatus.FAILED]

    @property
    def ok(self) -> bool:
        return not self.failed

    def raise_for_failures(self) -> None:
        """Raise JoinError if any host failed to join."""
        if self.ok:
            return
        from swarmctl.errors import JoinError
        names = ', '.join(f"{r.host.identity} ({r.reason})" for r in self.failed)
        raise JoinError(f"{len(self.failed)} host(s) failed to join: {names}", report=self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ok': self.ok,
            'hosts': [r.to_dict() for r in self.results],
        }


@dataclass
class StepResult:
    """Outcome of an install or init step on one host."""
    host: Host
    step: str
    status: StepStatus
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in (StepStatus.DONE, StepStatus.ALREADY_DONE)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'host': self.host.identity,
            'step': self.step,
            'status': self.status.value,
            'reason': self.reason,
        }


@dataclass
class TimelineEvent:
    seq: int
    timestamp: float
    host: str
    step: str

    def to_dict(self) -> Dict[str, Any]:
        return {'seq': self.seq, 'timestamp': self.timestamp, 'host': self.host, 'step': self.step}


@dataclass
class BootstrapReport:
    """Everything a bootstrap run produced, including the fatal error if any."""
    installs: Dict[str, StepResult] = field(default_factory=dict)
    leader: Optional[StepResult] = None
    credentials_issued: bool = False
    join_report: Optional[JoinReport] = None
    fatal_error: Optional[Exception] = None
    timeline: List[TimelineEvent] = field(default_factory=list)
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record(self, host: str, step: str) -> None:
        """Append a completion event to the timeline. Thread-safe."""
        with self._lock:
            self.timeline.append(TimelineEvent(len(self.timeline), time.time(), host, step))

    def events(self, step: str) -> List[TimelineEvent]:
        return [e for e in self.timeline if e.step == step]

    @property
    def failed_installs(self) -> List[StepResult]:
        return [r for r in self.installs.values() if not r.ok]

    @property
    def exit_code(self) -> int:
        if self.fatal_error is not None:
            return 1
        if self.failed_installs:
            return 1
        if self.leader is None or not self.leader.ok:
            return 1
        if self.join_report is not None and not self.join_report.ok:
            return 1
        return 0

    @property
    def duration(self) -> float:
        return (self.end_time or time.time()) - self.start_time

    def to_dict(self) -> Dict[str, Any]:
        fatal = None
        if self.fatal_error is not None:
            to_dict = getattr(self.fatal_error, 'to_dict', None)
            fatal = to_dict() if to_dict else {'error': type(self.fatal_error).__name__,
                                                'message': str(self.fatal_error)}
        return {
            'exit_code': self.exit_code,
            'duration': round(self.duration, 3),
            'installs': [r.to_dict() for r in self.installs.values()],
            'leader': self.leader.to_dict() if self.leader else None,
            'credentials_issued': self.credentials_issued,
            'joins': self.join_report.to_dict() if self.join_report else None,
            'fatal_error': fatal,
            'timeline': [e.to_dict() for e in self.timeline],
        }
