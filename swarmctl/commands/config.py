import logging
from typing import Optional

import typer

from ..errors import ConfigError
from ..modules.swarm.config import BootstrapConfig
from ..modules.swarm.configure import create_config_file, show_config, validate_config_file

logger = logging.getLogger("config")

app = typer.Typer(help="Configuration commands")


@app.command("init")
def init(
    output: Optional[str] = typer.Option(None, '--output', '-o', help='Where to write the config file'),
    force: bool = typer.Option(False, '--force', '-f', help='Overwrite an existing file'),
):
    """Write a config file with default values."""
    try:
        path = create_config_file(output, overwrite=force)
    except FileExistsError as e:
        print(f"❌ {e} (use --force to overwrite)")
        raise typer.Exit(code=1)
    print(f"✅ Configuration written to {path}")


@app.command("show")
def show(
    config_path: Optional[str] = typer.Option(None, '--config', '-c', help='Path to a swarmctl config file'),
):
    """Print the effective configuration with secrets redacted."""
    try:
        config = BootstrapConfig.load(config_path)
    except ConfigError as e:
        print(f"❌ {e.message}")
        raise typer.Exit(code=1)
    print(show_config(config))


@app.command("validate")
def validate(
    config_path: str = typer.Argument(..., help='Config file to check'),
):
    """Validate a config file."""
    result = validate_config_file(config_path)
    for warning in result['warnings']:
        print(f"⚠️  {warning}")
    if not result['valid']:
        for error in result['errors']:
            print(f"❌ {error}")
        raise typer.Exit(code=1)
    print(f"✅ {result['path']} is valid")
