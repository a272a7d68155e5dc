"""Joining managers and workers to the swarm."""
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Collection, Dict, List, Optional, Set

from swarmctl.errors import ExecutionError
from swarmctl.modules.guard import IdempotencyGuard
from swarmctl.modules.ssh import RemoteExecutor, redact
from . import commands
from .models import Credentials, Host, HostResult, JoinReport, JoinStatus, Operation, Role

logger = logging.getLogger("swarm.join")

ALREADY_IN_SWARM = "already part of a swarm"


class JoinCoordinator:
    """Joins every non-leader host with the credential matching its role.

    Each host joins at most once; a join is never retried automatically
    because a half-applied join must be inspected, not repeated.
    """

    def __init__(self, executor: RemoteExecutor, guard: IdempotencyGuard,
                 swarm_port: int = 2377, verify_membership: bool = True,
                 command_timeout: Optional[float] = None):
        self.executor = executor
        self.guard = guard
        self.swarm_port = swarm_port
        self.verify_membership = verify_membership
        self.command_timeout = command_timeout

    def join(self, host: Host, credentials: Credentials) -> HostResult:
        """Join a single host. Never raises for host-level failures."""
        if host.is_leader:
            raise ValueError(f"{host.identity} is the leader and cannot join its own swarm")

        credential = credentials.for_role(host.role)
        result = HostResult(host=host, status=JoinStatus.FAILED, credential_class=credential.credential_class)

        try:
            if self.guard.is_done(host, Operation.JOIN):
                logger.info(f"✅ [{host.identity}] already joined")
                result.status = JoinStatus.ALREADY_JOINED
                return result
        except ExecutionError as e:
            result.reason = f"cannot probe join state: {e.message}"
            result.step = 'probe'
            return result

        logger.info(
            f"🔗 [{host.identity}] joining {credentials.leader_address}:{self.swarm_port} "
            f"as {host.role.value}"
        )
        command = commands.swarm_join(credential.secret, credentials.leader_address, self.swarm_port)
        try:
            outcome = self.executor.execute(host, command, timeout=self.command_timeout,
                                            secrets=credentials.secrets())
        except ExecutionError as e:
            result.reason = e.message
            return result

        already = not outcome.ok and ALREADY_IN_SWARM in outcome.output
        if not outcome.ok and not already:
            output = redact(outcome.output, credentials.secrets())
            result.reason = f"swarm join exited with status {outcome.exit_code}: {output or 'no output'}"
            return result

        try:
            self.guard.mark_done(host, Operation.JOIN)
        except ExecutionError as e:
            result.reason = e.message
            result.step = 'mark-done'
            return result

        if already:
            logger.warning(f"⚠️  [{host.identity}] node is already part of a swarm")
            result.status = JoinStatus.ALREADY_JOINED
            return result

        logger.info(f"✅ [{host.identity}] joined as {host.role.value}")
        result.status = JoinStatus.JOINED
        return result

    def join_all(
        self,
        hosts: List[Host],
        credentials: Credentials,
        max_workers: int = 10,
        blocked: Optional[Dict[str, str]] = None,
        on_done: Optional[Callable[[HostResult], None]] = None,
    ) -> JoinReport:
        """Join all non-leader hosts concurrently.

        Args:
            hosts: Registry hosts; the leader is skipped
            credentials: Credentials read from the leader in this run
            max_workers: Upper bound of the worker pool
            blocked: identity -> reason for hosts that must not join (failed install)
            on_done: Callback invoked for every successful join

        Returns:
            JoinReport: per-host results in registry order
        """
        blocked = blocked or {}
        joiners = [h for h in hosts if not h.is_leader]
        results: Dict[str, HostResult] = {}

        for host in joiners:
            if host.identity in blocked:
                results[host.identity] = HostResult(
                    host=host,
                    status=JoinStatus.FAILED,
                    credential_class=credentials.for_role(host.role).credential_class,
                    reason=blocked[host.identity],
                    step='install',
                )

        pending = [h for h in joiners if h.identity not in results]
        if pending:
            with ThreadPoolExecutor(max_workers=min(max_workers, len(pending)),
                                    thread_name_prefix="join") as pool:
                future_to_host = {pool.submit(self.join, host, credentials): host for host in pending}
                try:
                    for future in as_completed(future_to_host):
                        host = future_to_host[future]
                        host_result = future.result()
                        results[host.identity] = host_result
                        if host_result.status == JoinStatus.FAILED:
                            logger.error(f"❌ [{host.identity}] join failed: {host_result.reason}")
                        elif on_done:
                            on_done(host_result)
                except BaseException:
                    for future in future_to_host:
                        future.cancel()
                    raise

        report = JoinReport(results=[results[h.identity] for h in joiners])

        if self.verify_membership:
            already = [r for r in report.results if r.status == JoinStatus.ALREADY_JOINED]
            if already:
                leader = next((h for h in hosts if h.is_leader), None) or Host(
                    identity=credentials.manager.issued_by,
                    address=credentials.leader_address,
                    role=Role.LEADER,
                )
                self._verify_membership(leader, already, credentials)

        return report

    def _leader_member_ids(self, leader: Host) -> Optional[Set[str]]:
        try:
            result = self.executor.execute(leader, commands.list_node_ids(), timeout=self.command_timeout)
        except ExecutionError as e:
            logger.warning(f"⚠️  Cannot list swarm members on the leader: {e}")
            return None
        if not result.ok:
            logger.warning(f"⚠️  Cannot list swarm members on the leader: {result.output}")
            return None
        return {line.strip() for line in result.stdout.splitlines() if line.strip()}

    def _verify_membership(self, leader: Host, results: Collection[HostResult],
                           credentials: Credentials) -> None:
        """Flag hosts whose recorded membership belongs to another swarm.

        A leader re-initialized out of band leaves earlier joiners with a
        valid marker but no membership. They are reported, not re-joined.
        """
        members = self._leader_member_ids(leader)
        if members is None:
            return

        for result in results:
            try:
                node = self.executor.execute(result.host, commands.swarm_node_id(),
                                             timeout=self.command_timeout)
            except ExecutionError as e:
                logger.warning(f"⚠️  [{result.host.identity}] cannot read swarm node id: {e}")
                continue
            node_id = node.stdout.strip()
            if node.ok and node_id and any(node_id.startswith(m) or m.startswith(node_id) for m in members):
                continue
            result.status = JoinStatus.FAILED
            result.step = 'verify'
            result.reason = (
                f"stale membership: node {node_id or 'unknown'} is not a member of the leader's swarm"
                f"{' ' + credentials.cluster_id if credentials.cluster_id else ''}; "
                "leave the old swarm and remove the join marker to re-join"
            )
            logger.error(f"❌ [{result.host.identity}] {result.reason}")
