"""
Submission Service: 稿件实体与状态机

中文注释:
1. 所有状态流转都经过 SubmissionStatus.allowed_next 校验，API 层不得直接写 status。
2. 读-判断-写 全部包在 repository.transaction(submission_id) 内；写入本身是按旧状态的条件更新，
   并发时失败方得到 InvalidTransition / InvalidState，而不是覆盖对方。
3. 通知在事务边界之外发出，失败不影响结果。
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional
from uuid import uuid4

from journalflow.core.actor import EDITORIAL_ROLES, SUBMITTING_ROLES, Actor
from journalflow.core.errors import (
    Forbidden,
    InvalidState,
    InvalidTransition,
    NotFound,
    SubmissionStillReferenced,
    ValidationError,
)
from journalflow.models.submission import (
    Submission,
    SubmissionStatistics,
    SubmissionStatus,
    normalize_status,
)
from journalflow.models.user import Role
from journalflow.repositories.base import WorkflowRepository
from journalflow.services.notification_service import NotificationDispatcher, NotificationEvent
from journalflow.services.validation import clean_list, require_reference, validate_submission

logger = logging.getLogger("journalflow.submissions")


class SubmissionService:
    def __init__(self, repository: WorkflowRepository, notifier: NotificationDispatcher) -> None:
        self.repository = repository
        self.notifier = notifier

    def _now(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    def load(self, submission_id: str) -> Submission:
        row = self.repository.get_submission(str(submission_id))
        if not row:
            raise NotFound("Submission not found", submission_id=str(submission_id))
        return Submission.model_validate(row)

    def notify_status_changed(
        self,
        submission: Submission,
        *,
        from_status: str,
        comments: Optional[str] = None,
    ) -> None:
        self.notifier.notify(
            NotificationEvent.STATUS_CHANGED,
            submission.author_id,
            {
                "submission_id": submission.id,
                "title": submission.title,
                "from_status": from_status,
                "to_status": submission.status,
                "comments": comments,
            },
        )

    def create_submission(
        self,
        actor: Actor,
        *,
        title: str,
        abstract: str,
        keywords: Iterable[str],
        manuscript_reference: str,
        co_authors: Optional[Iterable[str]] = None,
    ) -> Submission:
        if not actor.has_any_role(SUBMITTING_ROLES):
            raise Forbidden("Only authors can submit manuscripts")

        validate_submission(
            title=title,
            abstract=abstract,
            keywords=keywords,
            co_authors=co_authors,
            manuscript_reference=manuscript_reference,
        )

        now = self._now()
        row = {
            "id": str(uuid4()),
            "title": title.strip(),
            "abstract": abstract.strip(),
            "keywords": clean_list(keywords),
            "author_id": actor.id,
            "co_authors": clean_list(co_authors),
            "status": SubmissionStatus.SUBMITTED.value,
            "manuscript_reference": manuscript_reference.strip(),
            "editor_comments": None,
            "submitted_at": now,
            "updated_at": now,
        }
        created = Submission.model_validate(self.repository.insert_submission(row))
        logger.info("submission %s created by %s", created.id, actor.id)
        return created

    def get_submission(self, submission_id: str, actor: Actor) -> Submission:
        submission = self.load(submission_id)
        # 作者只能查看自己的稿件
        if actor.role == Role.AUTHOR and submission.author_id != actor.id:
            raise Forbidden("You can only view your own submissions", precondition="ownership")
        return submission

    def update_status(
        self,
        submission_id: str,
        new_status: str,
        actor: Actor,
        comments: Optional[str] = None,
    ) -> Submission:
        if not actor.has_any_role(EDITORIAL_ROLES):
            raise Forbidden("Only editors and admins can update submission status")

        to_norm = normalize_status(new_status)
        if to_norm is None:
            raise ValidationError(f"Invalid status: {new_status!r}")
        note = (comments or "").strip() or None

        with self.repository.transaction(str(submission_id)):
            current = self.load(submission_id)
            from_status = str(current.status)
            allowed = SubmissionStatus.allowed_next(from_status)
            if to_norm not in allowed:
                raise InvalidTransition(
                    f"Invalid transition: {from_status} -> {to_norm}. Allowed: {sorted(allowed)}",
                    from_status=from_status,
                    to_status=to_norm,
                )
            if to_norm == SubmissionStatus.REVISIONS_REQUIRED.value and not note:
                logger.warning("submission %s sent back for revisions without editor comments", current.id)

            updates = {"status": to_norm, "updated_at": self._now()}
            if note is not None:
                updates["editor_comments"] = note
            row = self.repository.update_submission(current.id, updates, expected_status=from_status)
            if row is None:
                latest = self.repository.get_submission(current.id)
                if latest is None:
                    raise NotFound("Submission not found", submission_id=current.id)
                raise InvalidTransition(
                    f"Invalid transition: status changed concurrently to {latest.get('status')}",
                    from_status=from_status,
                    to_status=to_norm,
                )
            updated = Submission.model_validate(row)

        logger.info("submission %s: %s -> %s by %s", updated.id, from_status, to_norm, actor.id)
        self.notify_status_changed(updated, from_status=from_status, comments=note)
        return updated

    @staticmethod
    def _ensure_replaceable(current: Submission, actor: Actor) -> None:
        if current.author_id != actor.id:
            raise Forbidden("You can only update your own submissions", precondition="ownership")
        if current.status != SubmissionStatus.REVISIONS_REQUIRED.value:
            raise InvalidState(
                "Manuscript can only be replaced when revisions are required",
                status=str(current.status),
            )

    def check_replace_allowed(self, submission_id: str, actor: Actor) -> Submission:
        """上传新文件前的预检，避免为无权操作的请求写入文件存储。"""
        current = self.load(submission_id)
        self._ensure_replaceable(current, actor)
        return current

    def replace_manuscript(self, submission_id: str, actor: Actor, new_reference: str) -> Submission:
        reference = require_reference(new_reference)
        with self.repository.transaction(str(submission_id)):
            current = self.load(submission_id)
            self._ensure_replaceable(current, actor)
            # 中文注释: 重传稿件后状态保持 revisions_required，必须由编辑手动推进。
            row = self.repository.update_submission(
                current.id,
                {"manuscript_reference": reference, "updated_at": self._now()},
                expected_status=SubmissionStatus.REVISIONS_REQUIRED.value,
            )
            if row is None:
                raise InvalidState("Manuscript can only be replaced when revisions are required")
        logger.info("submission %s manuscript replaced by author %s", current.id, actor.id)
        return Submission.model_validate(row)

    def advance_to_under_review(self, submission_id: str) -> Optional[Submission]:
        """
        submitted -> under_review（幂等）。

        只在调用方已持有 transaction(submission_id) 时使用；已不是 submitted 时什么都不做并返回 None。
        """
        row = self.repository.update_submission(
            str(submission_id),
            {"status": SubmissionStatus.UNDER_REVIEW.value, "updated_at": self._now()},
            expected_status=SubmissionStatus.SUBMITTED.value,
        )
        if row is None:
            return None
        logger.info("submission %s: submitted -> under_review (first review)", submission_id)
        return Submission.model_validate(row)

    def delete_submission(self, submission_id: str, actor: Actor, *, cascade: bool = False) -> None:
        if not actor.has_any_role(Role.ADMIN):
            raise Forbidden("Only admins can delete submissions")
        with self.repository.transaction(str(submission_id)):
            current = self.load(submission_id)
            reviews = self.repository.list_reviews(current.id)
            if reviews and not cascade:
                raise InvalidState(
                    f"Submission has {len(reviews)} review(s); delete them first or use cascade",
                    review_count=len(reviews),
                )
            if reviews:
                removed = self.repository.delete_reviews_for_submission(current.id)
                logger.info("submission %s: cascaded delete of %s review(s)", current.id, removed)
            try:
                deleted = self.repository.delete_submission(current.id)
            except SubmissionStillReferenced as e:
                # 读取 reviews 之后又有新的 Review 插入，外键拒绝删除
                raise InvalidState(
                    "Submission is still referenced by reviews; delete them first or use cascade",
                    submission_id=current.id,
                ) from e
            if not deleted:
                raise NotFound("Submission not found", submission_id=current.id)
        logger.info("submission %s deleted by admin %s", current.id, actor.id)

    def get_statistics(self, actor: Actor) -> SubmissionStatistics:
        if not actor.has_any_role(EDITORIAL_ROLES):
            raise Forbidden("Only editors and admins can view statistics")
        by_status = self.repository.count_submissions_by_status()
        return SubmissionStatistics(total=sum(by_status.values()), by_status=by_status)
