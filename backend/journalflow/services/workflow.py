from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Optional

from journalflow.core.config import WorkflowConfig
from journalflow.repositories import WorkflowRepository, build_repository
from journalflow.services.notification_service import (
    LogNotificationSink,
    NotificationDispatcher,
    NotificationService,
)
from journalflow.services.review_service import ReviewService
from journalflow.services.storage_service import (
    InMemoryManuscriptStore,
    ManuscriptStore,
    SupabaseManuscriptStore,
)
from journalflow.services.submission_service import SubmissionService

logger = logging.getLogger("journalflow.workflow")


@dataclass
class Workflow:
    """按配置装配好的一组协作对象（持久化、文件存储、通知、两个 Service）。"""

    config: WorkflowConfig
    repository: WorkflowRepository
    store: ManuscriptStore
    notifier: NotificationDispatcher
    submissions: SubmissionService
    reviews: ReviewService


def build_workflow(
    config: Optional[WorkflowConfig] = None,
    *,
    repository: Optional[WorkflowRepository] = None,
    store: Optional[ManuscriptStore] = None,
    notifier: Optional[NotificationDispatcher] = None,
) -> Workflow:
    cfg = config or WorkflowConfig.from_env()
    repo = repository or build_repository(cfg)

    if store is None:
        if cfg.storage_backend == "memory":
            store = InMemoryManuscriptStore()
        else:
            store = SupabaseManuscriptStore(bucket=cfg.manuscript_bucket)

    if notifier is None:
        sink = LogNotificationSink() if cfg.storage_backend == "memory" else NotificationService()
        if cfg.notifications_async:
            notifier = NotificationDispatcher.with_thread_pool(sink, workers=cfg.notification_workers)
        else:
            notifier = NotificationDispatcher(sink)

    submissions = SubmissionService(repo, notifier)
    reviews = ReviewService(repo, submissions, notifier, allow_direct_review=cfg.allow_direct_review)
    logger.info(
        "workflow ready: backend=%s direct_review=%s async_notifications=%s",
        repo.backend,
        cfg.allow_direct_review,
        cfg.notifications_async,
    )
    return Workflow(
        config=cfg,
        repository=repo,
        store=store,
        notifier=notifier,
        submissions=submissions,
        reviews=reviews,
    )


_workflow: Optional[Workflow] = None
_workflow_lock = Lock()


def get_workflow() -> Workflow:
    """FastAPI 依赖：进程内单例，首次访问时按环境变量装配。"""
    global _workflow
    if _workflow is None:
        with _workflow_lock:
            if _workflow is None:
                _workflow = build_workflow()
    return _workflow


def reset_workflow() -> None:
    global _workflow
    with _workflow_lock:
        if _workflow is not None:
            _workflow.notifier.shutdown()
        _workflow = None
