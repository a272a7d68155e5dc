"""Idempotency guard: at most one execution per host per mutating operation.

The guard answers "has this step already happened on this host?". The
authoritative answer lives on the host: a marker file written after the step
succeeded, or for swarm membership the live swarm state itself. Local records
are bookkeeping for the current run only.
"""
import logging
import threading
from typing import Dict, List, Tuple

from swarmctl.errors import ExecutionError
from swarmctl.modules.ssh import RemoteExecutor
from swarmctl.modules.swarm import commands
from swarmctl.modules.swarm.models import Host, Operation, OperationRecord

logger = logging.getLogger("guard")

# Operations whose effect is observable on the host without a marker
LIVE_EVIDENCE_OPERATIONS = (Operation.INIT, Operation.JOIN)


class IdempotencyGuard:
    """Interface of the idempotency guard."""

    def __init__(self):
        self._records: Dict[Tuple[str, Operation], OperationRecord] = {}
        self._lock = threading.Lock()

    def is_done(self, host: Host, operation: Operation) -> bool:
        raise NotImplementedError

    def mark_done(self, host: Host, operation: Operation) -> None:
        raise NotImplementedError

    def _record(self, host: Host, operation: Operation, completed: bool,
                evidence: str = 'local') -> OperationRecord:
        key = (host.identity, operation)
        with self._lock:
            record = self._records.get(key)
            if record is None:
                record = OperationRecord(host=host.identity, operation=operation)
                self._records[key] = record
            if completed:
                record.completed = True
                record.evidence = evidence
            return record

    def records(self) -> List[OperationRecord]:
        with self._lock:
            return list(self._records.values())


class MemoryGuard(IdempotencyGuard):
    """Guard that only remembers completions made through it, in memory."""

    def is_done(self, host: Host, operation: Operation) -> bool:
        return self._record(host, operation, completed=False).completed

    def mark_done(self, host: Host, operation: Operation) -> None:
        self._record(host, operation, completed=True)


class HostMarkerGuard(IdempotencyGuard):
    """Guard backed by marker files on each host.

    ``is_done`` always asks the host: a marker written by an earlier run,
    possibly by another operator, wins over anything remembered locally.
    For init and join, an active swarm state without a marker means an
    earlier run crashed between acting and marking; the marker is written
    then, so the step is never repeated.

    Transport failures while probing propagate as ExecutionError.
    """

    def __init__(self, executor: RemoteExecutor, marker_dir: str = "/var/lib/swarmctl",
                 probe_timeout: float = 30):
        super().__init__()
        self.executor = executor
        self.marker_dir = marker_dir
        self.probe_timeout = probe_timeout

    def is_done(self, host: Host, operation: Operation) -> bool:
        result = self.executor.execute(
            host, commands.probe_marker(self.marker_dir, operation), timeout=self.probe_timeout
        )
        if result.ok:
            self._record(host, operation, completed=True, evidence='marker')
            return True

        if operation in LIVE_EVIDENCE_OPERATIONS:
            state = self.executor.execute(host, commands.swarm_state(), timeout=self.probe_timeout)
            if state.stdout.strip() == 'active':
                logger.warning(
                    f"⚠️  [{host.identity}] swarm is active but no {operation.value} marker found, adopting"
                )
                self._write_marker(host, operation, evidence='adopted')
                self._record(host, operation, completed=True, evidence='swarm-state')
                return True

        self._record(host, operation, completed=False)
        return False

    def mark_done(self, host: Host, operation: Operation) -> None:
        self._write_marker(host, operation)
        self._record(host, operation, completed=True)

    def _write_marker(self, host: Host, operation: Operation, evidence: str = 'completed') -> None:
        result = self.executor.execute(
            host, commands.write_marker(self.marker_dir, operation, evidence), timeout=self.probe_timeout
        )
        if not result.ok:
            raise ExecutionError(
                f"Could not write {operation.value} marker: {result.output}",
                host=host.identity, step=f"{operation.value}-marker"
            )
        logger.debug(f"[{host.identity}] wrote {operation.value} marker")
