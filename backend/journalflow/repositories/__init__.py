from journalflow.core.config import WorkflowConfig
from journalflow.repositories.base import Row, WorkflowRepository
from journalflow.repositories.memory import InMemoryWorkflowRepository
from journalflow.repositories.supabase_repository import SupabaseWorkflowRepository


def build_repository(config: WorkflowConfig) -> WorkflowRepository:
    if config.storage_backend == "memory":
        return InMemoryWorkflowRepository()
    return SupabaseWorkflowRepository()


__all__ = [
    "Row",
    "WorkflowRepository",
    "InMemoryWorkflowRepository",
    "SupabaseWorkflowRepository",
    "build_repository",
]
