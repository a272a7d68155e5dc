from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from swarmctl.api.deps import ExecutorFactory, get_executor_factory
from swarmctl.errors import ConfigError
from swarmctl.modules import registry
from swarmctl.modules.swarm.config import BootstrapConfig, get_config
from swarmctl.modules.swarm.orchestrator import Orchestrator

router = APIRouter()

class BootstrapRequest(BaseModel):
    inventory: str
    config_path: Optional[str] = None
    verify: bool = True

@router.post("/bootstrap")
def bootstrap_swarm(req: BootstrapRequest, executor_factory: ExecutorFactory = Depends(get_executor_factory)):
    """Run the bootstrap; host failures are reported in the body, not the status code."""
    try:
        # A per-request config file never replaces the process-wide one
        config = BootstrapConfig.load(req.config_path) if req.config_path else get_config().model_copy(deep=True)
        hosts = registry.load(req.inventory)
    except ConfigError as e:
        raise HTTPException(status_code=400, detail=e.to_dict())

    config.orchestrator.verify_membership = req.verify
    orchestrator = Orchestrator(executor_factory(config), config=config)
    try:
        report = orchestrator.run(hosts)
    finally:
        orchestrator.close()
    return report.to_dict()
