import typer
import logging
import sys
from swarmctl.commands import bootstrap, config, inventory, status
from swarmctl.config import Config
from swarmctl.errors import ConfigError
from swarmctl.logging import setup_logging
from swarmctl.modules.swarm.config import get_config

app = typer.Typer(help="swarmctl - Docker Swarm bootstrap CLI")

# Global debug flag
debug_mode = False

# Add all command groups
app.add_typer(bootstrap.app, name="bootstrap")
app.add_typer(inventory.app, name="inventory")
app.add_typer(config.app, name="config")
app.command("status")(status.show_status)

# Global options callback
@app.callback()
def main(
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
):
    """swarmctl - Docker Swarm bootstrap CLI."""
    global debug_mode
    debug_mode = debug

    try:
        settings = get_config().logging
    except ConfigError as e:
        setup_logging(debug)
        logging.warning(f"Ignoring unreadable default configuration: {e}")
        return

    setup_logging(
        debug,
        level=settings.level,
        log_file=settings.file,
        max_size_mb=settings.max_size_mb,
        backup_count=settings.backup_count,
    )
    if debug:
        logging.debug("Debug mode enabled")

@app.command("serve")
def serve(
    host: str = typer.Option(Config.API_HOST, "--host", help="Address to bind"),
    port: int = typer.Option(Config.API_PORT, "--port", "-p", help="Port to listen on"),
):
    """Run the HTTP API."""
    import uvicorn

    Config.validate()
    logging.info(f"🌐 Serving swarmctl API on http://{host}:{port}")
    uvicorn.run("swarmctl.api.main:app", host=host, port=port, log_level="debug" if debug_mode else "info")

if __name__ == "__main__":
    try:
        app()
    except Exception as e:
        if debug_mode:
            import traceback
            logging.error(f"Unhandled exception: {e}\n{traceback.format_exc()}")
        else:
            logging.error(f"Error: {e}")
        sys.exit(1)
