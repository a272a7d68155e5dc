import json
import logging
from typing import Optional

import typer

from ..errors import ConfigError
from ..modules import registry
from ..modules.ssh import SSHExecutor
from ..modules.swarm.config import get_config
from ..modules.swarm.status import cluster_status

logger = logging.getLogger("status")


def show_status(
    inventory: str = typer.Option(..., '--inventory', '-i', help='Host registry (YAML or INI inventory)'),
    config_path: Optional[str] = typer.Option(None, '--config', '-c', help='Path to a swarmctl config file'),
    as_json: bool = typer.Option(False, '--json', help='Print the raw status as JSON'),
):
    """Show how far each host has progressed, without changing anything."""
    try:
        config = get_config(config_path)
        hosts = registry.load(inventory)
    except ConfigError as e:
        logger.error(f"❌ {e}")
        raise typer.Exit(code=1)

    executor = SSHExecutor.from_config(config)
    try:
        status = cluster_status(executor, hosts, config.runtime.marker_dir,
                                max_workers=config.orchestrator.max_workers)
    finally:
        executor.close()

    if as_json:
        print(json.dumps(status, indent=2))
    else:
        print(f"📡 Swarm status ({len(hosts)} host(s))")
        for host in status['hosts']:
            if not host['reachable']:
                print(f"  ❌ {host['host']} [{host['address']}] unreachable: {host.get('error')}")
                continue
            icon = '✅' if host['converged'] else '⏳'
            markers = ', '.join(f"{op}={'yes' if done else 'no'}" for op, done in host['markers'].items())
            print(f"  {icon} {host['host']} [{host['address']}] {host['role']} "
                  f"swarm={host['swarm_state']} {markers}")

    raise typer.Exit(code=0 if status['converged'] else 1)
