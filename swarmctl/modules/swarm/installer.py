"""Container runtime installation.

Ensures Docker is installed and running on every host, whatever its role.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, List, Optional, Tuple

from swarmctl.errors import ExecutionError, InstallError
from swarmctl.modules.guard import IdempotencyGuard
from swarmctl.modules.ssh import RemoteExecutor
from . import commands
from .config import RuntimeConfig
from .models import Host, Operation, StepResult, StepStatus
from .retry import NO_RETRY, RetryPolicy

logger = logging.getLogger("swarm.installer")


class RuntimeInstaller:
    """Installs the container runtime on hosts, once per host."""

    def __init__(
        self,
        executor: RemoteExecutor,
        guard: IdempotencyGuard,
        runtime: Optional[RuntimeConfig] = None,
        retry: RetryPolicy = NO_RETRY,
        command_timeout: Optional[float] = None,
    ):
        self.executor = executor
        self.guard = guard
        self.runtime = runtime or RuntimeConfig()
        self.retry = retry
        self.command_timeout = command_timeout

    def steps(self) -> List[Tuple[str, str]]:
        """The ordered (name, command) sub-steps of an installation."""
        rt = self.runtime
        return [
            ('prerequisites', commands.install_prerequisites(rt.prerequisites)),
            ('add-source', commands.add_package_source(rt.repository_url)),
            ('refresh-metadata', commands.refresh_metadata()),
            ('install-packages', commands.install_packages(rt.packages)),
            ('enable-service', commands.enable_service('docker')),
            ('grant-group', commands.grant_group(rt.runtime_user, rt.runtime_group)),
        ]

    def install(self, host: Host) -> bool:
        """Install the runtime on a host unless already done.

        Args:
            host: Host to install on

        Returns:
            bool: True if installed now, False if it was already installed

        Raises:
            InstallError: naming the failing sub-step
        """
        try:
            if self.guard.is_done(host, Operation.INSTALL):
                logger.info(f"✅ [{host.identity}] runtime already installed")
                return False
        except ExecutionError as e:
            raise InstallError(f"Cannot probe install state: {e.message}", host=host.identity, step='probe')

        logger.info(f"📦 [{host.identity}] installing container runtime...")
        start_time = time.time()

        for name, command in self.steps():
            self._run_step(host, name, command)

        try:
            self.guard.mark_done(host, Operation.INSTALL)
        except ExecutionError as e:
            raise InstallError(e.message, host=host.identity, step='mark-done')

        logger.info(f"✅ [{host.identity}] runtime installed in {time.time() - start_time:.1f}s")
        return True

    def _run_step(self, host: Host, name: str, command: str) -> None:
        logger.debug(f"[{host.identity}] install step: {name}")

        def attempt():
            return self.executor.execute(host, command, timeout=self.command_timeout)

        try:
            result = self.retry.call(attempt)
        except ExecutionError as e:
            raise InstallError(f"{e.message} (after {self.retry.attempts} attempt(s))",
                               host=host.identity, step=name)

        if not result.ok:
            raise InstallError(
                f"exited with status {result.exit_code}: {result.output or 'no output'}",
                host=host.identity, step=name
            )

    def install_all(
        self,
        hosts: List[Host],
        max_workers: int = 10,
        on_done: Optional[Callable[[Host], None]] = None,
    ) -> Dict[str, StepResult]:
        """Install on all hosts concurrently.

        One host's failure does not stop the others.

        Returns:
            dict: identity -> StepResult, in registry order
        """
        results: Dict[str, StepResult] = {}
        if not hosts:
            return results

        with ThreadPoolExecutor(max_workers=min(max_workers, len(hosts)),
                                thread_name_prefix="install") as pool:
            future_to_host = {pool.submit(self.install, host): host for host in hosts}

            try:
                for future in as_completed(future_to_host):
                    host = future_to_host[future]
                    try:
                        fresh = future.result()
                        status = StepStatus.DONE if fresh else StepStatus.ALREADY_DONE
                        results[host.identity] = StepResult(host, 'install', status)
                        if on_done:
                            on_done(host)
                    except InstallError as e:
                        logger.error(f"❌ {e}")
                        results[host.identity] = StepResult(host, e.step or 'install', StepStatus.FAILED, str(e))
            except BaseException:
                # Queued hosts must not start once the run is interrupted
                for future in future_to_host:
                    future.cancel()
                raise

        return {h.identity: results[h.identity] for h in hosts}
