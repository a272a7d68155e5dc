from typing import Any, Dict, List, Optional

from fastapi import APIRouter
from pydantic import BaseModel

from swarmctl.errors import ConfigError
from swarmctl.modules import registry

router = APIRouter()

class InventoryRequest(BaseModel):
    inventory: Optional[str] = None
    hosts: Optional[List[Dict[str, Any]]] = None

@router.post("/inventory/validate")
def validate_inventory(req: InventoryRequest):
    source = req.hosts if req.hosts is not None else req.inventory
    try:
        if source is None:
            raise ConfigError("Either inventory or hosts is required", step='registry')
        hosts = registry.load(source)
    except ConfigError as e:
        return {"valid": False, "error": e.to_dict()}
    return {
        "valid": True,
        "leader": registry.leader_of(hosts).identity,
        "hosts": [{"name": h.identity, "address": h.address, "role": h.role.value} for h in hosts],
    }
