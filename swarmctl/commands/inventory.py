import logging

import typer

from ..errors import ConfigError
from ..modules import registry

logger = logging.getLogger("inventory")

app = typer.Typer(help="Host registry commands")


@app.command("validate")
def validate(
    inventory: str = typer.Option(..., '--inventory', '-i', help='Host registry (YAML or INI inventory)'),
):
    """Check a host registry: exactly one leader, unique identities and addresses."""
    try:
        hosts = registry.load(inventory)
    except ConfigError as e:
        print(f"❌ Invalid registry: {e.message}")
        raise typer.Exit(code=1)

    leader = registry.leader_of(hosts)
    managers = [h for h in hosts if h.role.value == 'manager']
    workers = [h for h in hosts if h.role.value == 'worker']
    print(f"✅ {inventory}: {len(hosts)} host(s)")
    print(f"   leader:   {leader}")
    print(f"   managers: {', '.join(str(h) for h in managers) or '-'}")
    print(f"   workers:  {', '.join(str(h) for h in workers) or '-'}")
