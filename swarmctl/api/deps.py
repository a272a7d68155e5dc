from typing import Callable

from swarmctl.modules.ssh import RemoteExecutor, SSHExecutor
from swarmctl.modules.swarm.config import BootstrapConfig

ExecutorFactory = Callable[[BootstrapConfig], RemoteExecutor]

def get_executor_factory() -> ExecutorFactory:
    """Executor used by API requests; overridden in tests."""
    return SSHExecutor.from_config
