"""Swarm bootstrap commands.

Drive the hosts of a registry to a converged Docker Swarm: runtime install
on every host, swarm init on the leader, then managers and workers join
with the credential matching their role.
"""

import logging
import signal
from typing import Optional

import typer

from ..errors import ConfigError
from ..modules import registry
from ..modules.ssh import RemoteExecutor
from ..modules.swarm.config import get_config
from ..modules.swarm.orchestrator import Orchestrator
from ..modules.utils import export_report_to_json, render_report, send_slack_alert, summary_message

logger = logging.getLogger("bootstrap")

app = typer.Typer(help="Swarm bootstrap commands")


@app.command("run")
def run(
    inventory: str = typer.Option(..., '--inventory', '-i', help='Host registry (YAML or INI inventory)'),
    config_path: Optional[str] = typer.Option(None, '--config', '-c', help='Path to a swarmctl config file'),
    report_path: Optional[str] = typer.Option(None, '--report', help='Write the JSON run report to this file'),
    no_verify: bool = typer.Option(
        False, '--no-verify', help='Skip checking already-joined hosts against the leader'
    ),
):
    """Bootstrap a Docker Swarm from a host registry.

    Example:
        swarmctl bootstrap run -i hosts.yaml --report report.json
    """
    try:
        config = get_config(config_path)
        hosts = registry.load(inventory)
    except ConfigError as e:
        logger.error(f"❌ {e}")
        raise typer.Exit(code=1)

    if no_verify:
        config.orchestrator.verify_membership = False

    logger.info(f"🚀 Starting swarm bootstrap of {len(hosts)} host(s) from {inventory}")
    orchestrator = Orchestrator.from_config(config)
    previous = signal.signal(signal.SIGTERM, _terminate)
    try:
        report = orchestrator.run(hosts)
    except KeyboardInterrupt:
        logger.warning("⚠️  Bootstrap cancelled; re-run to resume from the first incomplete step")
        raise typer.Exit(code=130)
    finally:
        signal.signal(signal.SIGTERM, previous)
        orchestrator.close()

    for line in render_report(report):
        print(line)

    if report.join_report is not None and not report.join_report.ok:
        for result in report.join_report.failed:
            logger.error(f"❌ {result.host.identity}: join failed at step '{result.step}': {result.reason}")

    if report_path:
        export_report_to_json(report, report_path)

    webhook = config.notifications.slack_webhook_url
    if webhook:
        send_slack_alert(webhook, summary_message(report))

    if report.exit_code == 0:
        logger.info("✅ Swarm bootstrap complete")
    raise typer.Exit(code=report.exit_code)


def _terminate(signum, frame):
    raise KeyboardInterrupt


@app.command("plan")
def plan(
    inventory: str = typer.Option(..., '--inventory', '-i', help='Host registry (YAML or INI inventory)'),
    config_path: Optional[str] = typer.Option(None, '--config', '-c', help='Path to a swarmctl config file'),
):
    """Show the stages a bootstrap would run and the hosts each touches."""
    try:
        config = get_config(config_path)
        hosts = registry.load(inventory)
        # Planning never opens a connection
        orchestrator = Orchestrator(executor=_NoExecutor(), config=config)
        stages = orchestrator.plan(hosts)
    except ConfigError as e:
        logger.error(f"❌ {e}")
        raise typer.Exit(code=1)

    print("\n--- Bootstrap Plan ---")
    for index, (name, targets) in enumerate(stages, 1):
        print(f"{index}. {name}")
        for host in targets:
            credential = ''
            if name == 'join':
                credential = f" with {host.role.value} token"
            print(f"   - {host.identity} [{host.address}] ({host.role.value}){credential}")
    print("----------------------\n")


class _NoExecutor(RemoteExecutor):
    """Executor stand-in for planning; any remote call is a bug."""

    def execute(self, host, command, timeout=None, secrets=()):
        raise RuntimeError(f"plan must not execute commands (attempted on {host.identity})")

    def close(self) -> None:
        pass

