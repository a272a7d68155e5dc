"""Join credential retrieval from the swarm leader."""
import logging
from typing import Optional

from swarmctl.errors import CredentialError, ExecutionError
from swarmctl.modules.ssh import RemoteExecutor
from . import commands
from .models import Credentials, CredentialClass, Host, JoinCredential
from .retry import NO_RETRY, RetryPolicy, TransientError

logger = logging.getLogger("swarm.credentials")

# Leader answers that mean "ask again in a moment"
NOT_READY_MARKERS = (
    "not a swarm manager",
    "node is not ready",
    "context deadline exceeded",
    "rpc error",
    "cannot connect to the docker daemon",
)


class CredentialBroker:
    """Reads the leader's live join tokens.

    Tokens are never minted, rotated, stored or logged here: they are read
    from the leader on every run and handed on as an in-memory value.
    """

    def __init__(self, executor: RemoteExecutor, retry: RetryPolicy = NO_RETRY,
                 command_timeout: Optional[float] = None):
        self.executor = executor
        self.retry = retry
        self.command_timeout = command_timeout

    def _query(self, leader: Host, command: str, what: str, secret: bool = True) -> str:
        result = self.executor.execute(leader, command, timeout=self.command_timeout)
        value = result.stdout.strip()

        if not result.ok:
            output = result.output.lower()
            if any(marker in output for marker in NOT_READY_MARKERS):
                raise TransientError(f"leader not ready for {what}: {result.output}")
            raise CredentialError(
                f"Reading {what} exited with status {result.exit_code}: {result.output}",
                host=leader.identity, step='credentials'
            )
        if secret and not value:
            raise TransientError(f"leader returned an empty {what}")
        return value

    def fetch_token(self, leader: Host, credential_class: CredentialClass) -> JoinCredential:
        what = f"{credential_class.value} join token"
        try:
            secret = self.retry.call(
                lambda: self._query(leader, commands.join_token(credential_class), what)
            )
        except (ExecutionError, TransientError) as e:
            raise CredentialError(
                f"Could not read {what} after {self.retry.attempts} attempt(s): {e}",
                host=leader.identity, step='credentials'
            )
        return JoinCredential(credential_class=credential_class, secret=secret, issued_by=leader.identity)

    def cluster_id(self, leader: Host) -> Optional[str]:
        """Best-effort swarm cluster id, for reporting only."""
        try:
            return self._query(leader, commands.swarm_cluster_id(), 'cluster id', secret=False) or None
        except (ExecutionError, TransientError, CredentialError) as e:
            logger.debug(f"[{leader.identity}] cluster id unavailable: {e}")
            return None

    def issue_credentials(self, leader: Host) -> Credentials:
        """Return the leader's manager and worker join credentials.

        Raises:
            CredentialError: If the leader cannot produce them within the retry budget
        """
        logger.info(f"🔑 [{leader.identity}] reading join tokens")
        manager = self.fetch_token(leader, CredentialClass.MANAGER)
        worker = self.fetch_token(leader, CredentialClass.WORKER)
        if manager.secret == worker.secret:
            raise CredentialError("Manager and worker join tokens are identical",
                                  host=leader.identity, step='credentials')

        credentials = Credentials(
            manager=manager,
            worker=worker,
            leader_address=leader.address,
            cluster_id=self.cluster_id(leader),
        )
        logger.info(f"✅ [{leader.identity}] join tokens ready (cluster {credentials.cluster_id or 'unknown'})")
        return credentials
