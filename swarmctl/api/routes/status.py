from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from swarmctl.api.deps import ExecutorFactory, get_executor_factory
from swarmctl.errors import ConfigError
from swarmctl.modules import registry
from swarmctl.modules.swarm.config import BootstrapConfig, get_config
from swarmctl.modules.swarm.status import cluster_status

router = APIRouter()

class StatusRequest(BaseModel):
    inventory: str
    config_path: Optional[str] = None

@router.post("/status")
def swarm_status(req: StatusRequest, executor_factory: ExecutorFactory = Depends(get_executor_factory)):
    try:
        config = BootstrapConfig.load(req.config_path) if req.config_path else get_config()
        hosts = registry.load(req.inventory)
    except ConfigError as e:
        raise HTTPException(status_code=400, detail=e.to_dict())

    executor = executor_factory(config)
    try:
        return cluster_status(executor, hosts, config.runtime.marker_dir,
                              max_workers=config.orchestrator.max_workers)
    finally:
        executor.close()
