from fastapi import APIRouter, Depends

from journalflow.services.workflow import Workflow, get_workflow

router = APIRouter(tags=["System"])


@router.get("/system/health")
async def health(workflow: Workflow = Depends(get_workflow)):
    return {
        "status": "ok",
        "backend": workflow.repository.backend,
        "direct_review": workflow.config.allow_direct_review,
    }
