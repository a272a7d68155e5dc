"""Swarm bootstrap orchestration.

The bootstrap is a pipeline of stages with declared data dependencies:

    install (all hosts) -> init (leader) -> credentials (leader) -> join (others)

Work inside a stage runs in parallel across hosts; stages run strictly one
after another. Per-host failures are collected, while a failed leader
initialization or credential retrieval stops the pipeline at once.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from swarmctl.errors import (
    ConfigError,
    CredentialError,
    InitError,
    SwarmctlError,
)
from swarmctl.modules import registry
from swarmctl.modules.guard import HostMarkerGuard, IdempotencyGuard
from swarmctl.modules.ssh import RemoteExecutor, SSHExecutor
from .config import BootstrapConfig, get_config
from .credentials import CredentialBroker
from .installer import RuntimeInstaller
from .join import JoinCoordinator
from .leader import LeaderInitializer
from .models import BootstrapReport, Credentials, Host, HostResult, StepResult, StepStatus
from .retry import RetryPolicy

logger = logging.getLogger("swarm.orchestrator")


@dataclass
class PipelineContext:
    """Data handed from one stage to the next during a single run."""
    hosts: List[Host]
    leader: Host
    report: BootstrapReport
    credentials: Optional[Credentials] = None
    blocked: Dict[str, str] = field(default_factory=dict)


@dataclass
class Stage:
    """A pipeline stage and the stages whose output it consumes."""
    name: str
    run: Callable[[PipelineContext], None]
    depends_on: Tuple[str, ...] = ()
    targets: Callable[[List[Host]], List[Host]] = lambda hosts: hosts


def order_stages(stages: List[Stage]) -> List[Stage]:
    """Order stages so every stage follows its dependencies.

    Raises:
        ConfigError: On an unknown dependency or a dependency cycle
    """
    by_name = {s.name: s for s in stages}
    ordered: List[Stage] = []
    done = set()
    visiting = set()

    def visit(stage: Stage):
        if stage.name in done:
            return
        if stage.name in visiting:
            raise ConfigError(f"Stage dependency cycle through '{stage.name}'", step='pipeline')
        visiting.add(stage.name)
        for dep in stage.depends_on:
            if dep not in by_name:
                raise ConfigError(f"Stage '{stage.name}' depends on unknown stage '{dep}'", step='pipeline')
            visit(by_name[dep])
        visiting.discard(stage.name)
        done.add(stage.name)
        ordered.append(stage)

    for stage in stages:
        visit(stage)
    return ordered


class Orchestrator:
    """Drives a set of hosts to a converged swarm."""

    def __init__(
        self,
        executor: RemoteExecutor,
        guard: Optional[IdempotencyGuard] = None,
        config: Optional[BootstrapConfig] = None,
        retry: Optional[RetryPolicy] = None,
    ):
        self.config = config or BootstrapConfig()
        self.executor = executor
        self.guard = guard or HostMarkerGuard(executor, marker_dir=self.config.runtime.marker_dir)
        self.retry = retry or RetryPolicy.from_config(self.config)

        timeout = self.config.ssh.command_timeout
        self.installer = RuntimeInstaller(executor, self.guard, self.config.runtime, self.retry, timeout)
        self.initializer = LeaderInitializer(executor, self.guard, timeout)
        self.broker = CredentialBroker(executor, self.retry, timeout)
        self.coordinator = JoinCoordinator(
            executor,
            self.guard,
            swarm_port=self.config.runtime.swarm_port,
            verify_membership=self.config.orchestrator.verify_membership,
            command_timeout=timeout,
        )

    @classmethod
    def from_config(cls, config: Optional[BootstrapConfig] = None) -> 'Orchestrator':
        """Build an orchestrator talking SSH, as configured."""
        config = config or get_config()
        return cls(SSHExecutor.from_config(config), config=config)

    def stages(self) -> List[Stage]:
        return order_stages([
            Stage('install', self._install),
            Stage('init', self._init, depends_on=('install',),
                  targets=lambda hosts: [registry.leader_of(hosts)]),
            Stage('credentials', self._credentials, depends_on=('init',),
                  targets=lambda hosts: [registry.leader_of(hosts)]),
            Stage('join', self._join, depends_on=('credentials',),
                  targets=registry.non_leaders),
        ])

    def plan(self, hosts: List[Host]) -> List[Tuple[str, List[Host]]]:
        """Stages and the hosts each one touches, without any remote call."""
        registry.validate_hosts(hosts)
        return [(stage.name, stage.targets(hosts)) for stage in self.stages()]

    def _workers(self, count: int) -> int:
        return max(1, min(self.config.orchestrator.max_workers, count))

    def _install(self, ctx: PipelineContext) -> None:
        ctx.report.installs = self.installer.install_all(
            ctx.hosts,
            max_workers=self._workers(len(ctx.hosts)),
            on_done=lambda host: ctx.report.record(host.identity, 'install'),
        )
        for identity, result in ctx.report.installs.items():
            if not result.ok:
                ctx.blocked[identity] = f"runtime install failed: {result.reason}"

        if ctx.leader.identity in ctx.blocked:
            raise InitError("Runtime install failed on the leader, cannot initialize",
                            host=ctx.leader.identity, step='install')

    def _init(self, ctx: PipelineContext) -> None:
        fresh = self.initializer.initialize(ctx.leader)
        status = StepStatus.DONE if fresh else StepStatus.ALREADY_DONE
        ctx.report.leader = StepResult(ctx.leader, 'init', status)
        ctx.report.record(ctx.leader.identity, 'init')

    def _credentials(self, ctx: PipelineContext) -> None:
        ctx.credentials = self.broker.issue_credentials(ctx.leader)
        ctx.report.credentials_issued = True
        ctx.report.record(ctx.leader.identity, 'credentials')

    def _join(self, ctx: PipelineContext) -> None:
        joiners = registry.non_leaders(ctx.hosts)

        def joined(result: HostResult):
            ctx.report.record(result.host.identity, 'join')

        ctx.report.join_report = self.coordinator.join_all(
            ctx.hosts,
            ctx.credentials,
            max_workers=self._workers(len(joiners)),
            blocked=ctx.blocked,
            on_done=joined,
        )

    def run(self, hosts: List[Host]) -> BootstrapReport:
        """Run the whole bootstrap once.

        Args:
            hosts: The validated host registry

        Returns:
            BootstrapReport: never raises for host-level or fatal step failures;
            the fatal error, if any, is on the report

        Raises:
            ConfigError: If the registry is inconsistent (before any remote call)
        """
        registry.validate_hosts(hosts)
        leader = registry.leader_of(hosts)
        report = BootstrapReport()
        ctx = PipelineContext(hosts=hosts, leader=leader, report=report)

        logger.info(
            f"🚀 Bootstrapping swarm: leader {leader}, "
            f"{sum(1 for h in hosts if h.role.value == 'manager')} manager(s), "
            f"{sum(1 for h in hosts if h.role.value == 'worker')} worker(s)"
        )

        try:
            for stage in self.stages():
                logger.info(f"▶️  Stage: {stage.name}")
                start_time = time.time()
                stage.run(ctx)
                logger.debug(f"Stage {stage.name} finished in {time.time() - start_time:.1f}s")
        except (InitError, CredentialError) as e:
            logger.error(f"❌ {e}")
            report.fatal_error = e
            if report.leader is None and isinstance(e, InitError):
                report.leader = StepResult(leader, e.step or 'init', StepStatus.FAILED, str(e))
        except KeyboardInterrupt:
            logger.warning("⚠️  Bootstrap interrupted; completed steps are recorded on the hosts")
            raise
        except SwarmctlError as e:
            logger.error(f"❌ Unexpected bootstrap error: {e}", exc_info=True)
            report.fatal_error = e
        finally:
            report.end_time = time.time()

        if report.exit_code == 0:
            logger.info(f"✅ Swarm converged in {report.duration:.1f}s")
        else:
            logger.error(f"❌ Bootstrap finished with errors after {report.duration:.1f}s")
        return report

    def close(self) -> None:
        self.executor.close()
