"""Read-only view of bootstrap progress on each host."""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List

from swarmctl.errors import ExecutionError
from swarmctl.modules.ssh import RemoteExecutor
from . import commands
from .models import Host, Operation

logger = logging.getLogger("swarm.status")

# Terminal operation per role
TERMINAL_OPERATION = {
    'leader': Operation.INIT,
    'manager': Operation.JOIN,
    'worker': Operation.JOIN,
}


def probe_host(executor: RemoteExecutor, host: Host, marker_dir: str, timeout: float = 30) -> Dict[str, Any]:
    """Report which markers exist on a host and its live swarm state.

    Never writes anything to the host.
    """
    status: Dict[str, Any] = {
        'host': host.identity,
        'address': host.address,
        'role': host.role.value,
        'reachable': True,
        'markers': {},
        'swarm_state': None,
        'converged': False,
    }
    try:
        for operation in Operation:
            if operation == Operation.INIT and not host.is_leader:
                continue
            if operation == Operation.JOIN and host.is_leader:
                continue
            result = executor.execute(host, commands.probe_marker(marker_dir, operation), timeout=timeout)
            status['markers'][operation.value] = result.ok
        state = executor.execute(host, commands.swarm_state(), timeout=timeout)
        status['swarm_state'] = state.stdout.strip() or 'unknown'
    except ExecutionError as e:
        logger.warning(f"⚠️  [{host.identity}] unreachable: {e.message}")
        status['reachable'] = False
        status['error'] = e.message
        return status

    terminal = TERMINAL_OPERATION[host.role.value].value
    status['converged'] = bool(status['markers'].get(terminal)) and status['swarm_state'] == 'active'
    return status


def cluster_status(executor: RemoteExecutor, hosts: List[Host], marker_dir: str,
                   max_workers: int = 10) -> Dict[str, Any]:
    """Probe all hosts in parallel and summarize convergence."""
    if not hosts:
        return {'converged': False, 'hosts': []}

    with ThreadPoolExecutor(max_workers=min(max_workers, len(hosts)), thread_name_prefix="status") as pool:
        statuses = list(pool.map(lambda h: probe_host(executor, h, marker_dir), hosts))

    return {
        'converged': all(s['converged'] for s in statuses),
        'joined': [s['host'] for s in statuses if s['converged']],
        'pending': [s['host'] for s in statuses if not s['converged']],
        'hosts': statuses,
    }
