from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel

from kubecheck.config import CheckConfig
from kubecheck.modules import CheckOrchestrator

router = APIRouter()


class CheckRequest(BaseModel):
    pre_tap: bool = False
    namespace: Optional[str] = None


@router.post("/check")
def run_check(req: CheckRequest):
    config = CheckConfig.load(pre_tap=req.pre_tap, resources_namespace=req.namespace)
    orchestrator = CheckOrchestrator(config)
    passed = orchestrator.run(config.mode)
    return {
        "mode": config.mode.value,
        "passed": passed,
        "results": [r.to_dict() for r in orchestrator.results],
    }
