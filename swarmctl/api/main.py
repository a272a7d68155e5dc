from fastapi import FastAPI
from swarmctl.api.routes import bootstrap, inventory, status
from swarmctl.api.middleware import AuthMiddleware
from swarmctl.logging import setup_logger
from dotenv import load_dotenv

load_dotenv()
logger = setup_logger("swarmctl.api")

app = FastAPI(title="swarmctl", description="Docker Swarm bootstrap API")
app.add_middleware(AuthMiddleware)

app.include_router(bootstrap.router)
app.include_router(status.router)
app.include_router(inventory.router)

logger.debug("swarmctl API routes registered")
