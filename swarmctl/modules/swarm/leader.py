"""Swarm initialization on the leader host."""
import logging
from typing import Optional

from swarmctl.errors import ExecutionError, InitError
from swarmctl.modules.guard import IdempotencyGuard
from swarmctl.modules.ssh import RemoteExecutor
from . import commands
from .models import Host, Operation

logger = logging.getLogger("swarm.leader")

# docker's answer when the node already belongs to a swarm
ALREADY_IN_SWARM = "already part of a swarm"


class LeaderInitializer:
    """Starts a new swarm on the leader, exactly once.

    Initialization is never retried automatically: initializing twice would
    invalidate the tokens and membership of every host that already joined.
    """

    def __init__(self, executor: RemoteExecutor, guard: IdempotencyGuard,
                 command_timeout: Optional[float] = None):
        self.executor = executor
        self.guard = guard
        self.command_timeout = command_timeout

    def initialize(self, leader: Host) -> bool:
        """Initialize the swarm on the leader.

        Args:
            leader: The registry's leader host

        Returns:
            bool: True if the swarm was created now, False if it already existed

        Raises:
            InitError: If the leader is not ready or initialization failed
        """
        if not leader.is_leader:
            raise InitError(f"Host has role '{leader.role.value}', not leader",
                            host=leader.identity, step='init')

        try:
            if not self.guard.is_done(leader, Operation.INSTALL):
                raise InitError("Container runtime is not installed on the leader",
                                host=leader.identity, step='precondition')
            if self.guard.is_done(leader, Operation.INIT):
                logger.info(f"✅ [{leader.identity}] swarm already initialized")
                return False
        except ExecutionError as e:
            raise InitError(f"Leader unreachable: {e.message}", host=leader.identity, step='probe')

        logger.info(f"🧭 [{leader.identity}] initializing swarm, advertising {leader.address}")
        try:
            result = self.executor.execute(leader, commands.swarm_init(leader.address),
                                           timeout=self.command_timeout)
        except ExecutionError as e:
            raise InitError(f"Leader unreachable: {e.message}", host=leader.identity, step='init')

        if not result.ok:
            if ALREADY_IN_SWARM in result.output:
                # Someone initialized it out of band, or our marker write was lost
                logger.warning(f"⚠️  [{leader.identity}] node is already part of a swarm, adopting it")
            else:
                raise InitError(
                    f"swarm init exited with status {result.exit_code}: {result.output or 'no output'}",
                    host=leader.identity, step='init'
                )

        try:
            self.guard.mark_done(leader, Operation.INIT)
        except ExecutionError as e:
            raise InitError(e.message, host=leader.identity, step='mark-done')

        logger.info(f"✅ [{leader.identity}] swarm initialized")
        return ALREADY_IN_SWARM not in result.output
