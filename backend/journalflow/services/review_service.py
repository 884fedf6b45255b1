"""
Review Service: 审稿人指派与审稿意见提交

中文注释:
1. 统一两种审稿模型：先指派再提交（assign -> submit）与无指派直接提交（direct review）。
   指派是可选的；“完成审稿”是唯一影响不变量的事件。
2. (submission_id, reviewer_id) 至多一条 Review：内存后端靠键索引，Postgres 靠 UNIQUE 约束，
   并发冲突统一翻译为 AlreadyAssigned / AlreadyCompleted / AlreadyReviewed。
3. 审稿意见 write-once：完成写入是 `submitted_at IS NULL` 条件更新，失败方不会覆盖已有意见。
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from journalflow.core.actor import EDITORIAL_ROLES, REVIEW_CAPABLE_ROLES, Actor
from journalflow.core.errors import (
    AlreadyAssigned,
    AlreadyCompleted,
    AlreadyReviewed,
    DuplicateReviewRow,
    Forbidden,
    InvalidRole,
    InvalidSubmissionState,
    NotFound,
    SubmissionNotReviewable,
    UniquenessViolation,
    ValidationError,
)
from journalflow.models.review import (
    Recommendation,
    Review,
    ReviewerQueue,
    ReviewStatistics,
    ReviewSummary,
    normalize_recommendation,
)
from journalflow.models.submission import REVIEWABLE_STATUSES, Submission, SubmissionStatus
from journalflow.models.user import normalize_role
from journalflow.repositories.base import Row, WorkflowRepository
from journalflow.services.notification_service import NotificationDispatcher, NotificationEvent
from journalflow.services.submission_service import SubmissionService
from journalflow.services.validation import validate_review_comments

logger = logging.getLogger("journalflow.reviews")


def _completed_error(review: Review) -> UniquenessViolation:
    # 指派产生的 Review 重复提交 -> AlreadyCompleted；直接提交通道产生的 -> AlreadyReviewed
    if review.assigned_by:
        return AlreadyCompleted(
            "This review has already been completed",
            review_id=review.id,
        )
    return AlreadyReviewed(
        "Reviewer has already submitted a review for this submission",
        review_id=review.id,
    )


def _not_reviewable(err: SubmissionNotReviewable, message: str) -> InvalidSubmissionState:
    # 读取之后、插入之前稿件状态被并发修改，由存储层在插入时拒绝
    logger.warning("review insert rejected: submission %s is %s", err.submission_id, err.status or "not reviewable")
    extra = {"status": err.status} if err.status else {}
    return InvalidSubmissionState(message, **extra)


def _parse_ts(value: object) -> Optional[datetime]:
    if isinstance(value, datetime):
        ts = value
    else:
        raw = str(value or "").strip()
        if not raw:
            return None
        try:
            ts = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return None
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


class ReviewService:
    def __init__(
        self,
        repository: WorkflowRepository,
        submissions: SubmissionService,
        notifier: NotificationDispatcher,
        *,
        allow_direct_review: bool = True,
    ) -> None:
        self.repository = repository
        self.submissions = submissions
        self.notifier = notifier
        self.allow_direct_review = allow_direct_review

    def _now(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    def assign_reviewer(self, submission_id: str, reviewer_id: str, actor: Actor) -> Review:
        if not actor.has_any_role(EDITORIAL_ROLES):
            raise Forbidden("Only editors and admins can assign reviewers")
        reviewer_id = str(reviewer_id or "").strip()
        if not reviewer_id:
            raise ValidationError("reviewer_id is required")

        with self.repository.transaction(str(submission_id)):
            submission = self.submissions.load(submission_id)

            reviewer = self.repository.get_user(reviewer_id)
            if not reviewer:
                raise NotFound("Reviewer not found", reviewer_id=reviewer_id)
            role = normalize_role(reviewer.get("role"))
            if role is None or role not in REVIEW_CAPABLE_ROLES:
                raise InvalidRole(
                    "User cannot be assigned as reviewer",
                    reviewer_id=reviewer_id,
                    role=str(reviewer.get("role") or ""),
                )
            if reviewer_id == submission.author_id:
                raise Forbidden("Authors cannot review their own submission", precondition="ownership")
            if submission.status in SubmissionStatus.terminal():
                raise InvalidSubmissionState(
                    f"Cannot assign reviewers to a {submission.status} submission",
                    status=str(submission.status),
                )

            if self.repository.get_review_for(submission.id, reviewer_id):
                raise AlreadyAssigned("Reviewer is already assigned to this submission")

            row = {
                "id": str(uuid4()),
                "submission_id": submission.id,
                "reviewer_id": reviewer_id,
                "comments": None,
                "recommendation": None,
                "assigned_by": actor.id,
                "assigned_at": self._now(),
                "submitted_at": None,
            }
            try:
                review = Review.model_validate(self.repository.insert_review(row))
            except DuplicateReviewRow as e:
                raise AlreadyAssigned("Reviewer is already assigned to this submission") from e
            except SubmissionNotReviewable as e:
                raise _not_reviewable(e, "Cannot assign reviewers to a submission that is no longer open") from e

            advanced = self.submissions.advance_to_under_review(submission.id)

        logger.info("reviewer %s assigned to submission %s by %s", reviewer_id, submission.id, actor.id)
        self.notifier.notify(
            NotificationEvent.ASSIGNED,
            reviewer_id,
            {"submission_id": submission.id, "title": submission.title, "review_id": review.id},
        )
        if advanced is not None:
            self.submissions.notify_status_changed(advanced, from_status=SubmissionStatus.SUBMITTED.value)
        return review

    def _complete(self, existing: Row, updates: Row) -> Review:
        review = Review.model_validate(existing)
        if review.is_completed:
            raise _completed_error(review)
        row = self.repository.complete_review(review.id, updates)
        if row is None:
            # 条件更新落空：并发提交已先完成
            raise _completed_error(review)
        return Review.model_validate(row)

    def submit_review(
        self,
        submission_id: str,
        reviewer_id: str,
        comments: str,
        recommendation: str,
        actor: Actor,
    ) -> Review:
        rec = normalize_recommendation(recommendation)
        if rec is None:
            raise ValidationError(
                f"Invalid recommendation: {recommendation!r}. Allowed: {[r.value for r in Recommendation]}"
            )
        text = validate_review_comments(comments)
        reviewer_id = str(reviewer_id or "").strip()
        if reviewer_id != actor.id:
            raise Forbidden("Reviews can only be submitted by the reviewer", precondition="ownership")

        advanced: Optional[Submission] = None
        with self.repository.transaction(str(submission_id)):
            submission = self.submissions.load(submission_id)
            now = self._now()
            updates = {"comments": text, "recommendation": rec, "submitted_at": now}

            existing = self.repository.get_review_for(submission.id, reviewer_id)
            if existing:
                review = self._complete(existing, updates)
            else:
                review, advanced = self._direct_review(submission, actor, updates)

        logger.info(
            "review %s completed on submission %s (recommendation=%s)", review.id, submission.id, rec
        )
        payload = {
            "submission_id": submission.id,
            "title": submission.title,
            "review_id": review.id,
            "recommendation": rec,
        }
        self.notifier.notify(NotificationEvent.COMPLETED, submission.author_id, payload)
        if review.assigned_by and review.assigned_by != submission.author_id:
            self.notifier.notify(NotificationEvent.COMPLETED, review.assigned_by, payload)
        if advanced is not None:
            self.submissions.notify_status_changed(advanced, from_status=SubmissionStatus.SUBMITTED.value)
        return review

    def _direct_review(
        self,
        submission: Submission,
        actor: Actor,
        updates: Row,
    ) -> tuple[Review, Optional[Submission]]:
        """
        无指派直接提交：一步创建“已完成”的 Review。

        中文注释: 调用方已确认不存在该审稿人的 Review（含待完成的指派），因此不会产生重复记录。
        """
        if not self.allow_direct_review:
            raise NotFound("No pending review assignment for this reviewer")
        if not actor.has_any_role(REVIEW_CAPABLE_ROLES):
            raise InvalidRole("User does not have reviewer permissions", role=actor.role.value)
        if actor.id == submission.author_id:
            raise Forbidden("Authors cannot review their own submission", precondition="ownership")
        if submission.status not in REVIEWABLE_STATUSES:
            raise InvalidSubmissionState(
                "Submission is not available for review",
                status=str(submission.status),
            )

        row = {
            "id": str(uuid4()),
            "submission_id": submission.id,
            "reviewer_id": actor.id,
            "assigned_by": None,
            "assigned_at": None,
            **updates,
        }
        try:
            review = Review.model_validate(self.repository.insert_review(row))
        except DuplicateReviewRow:
            # 并发：另一请求刚插入了同一 (submission, reviewer) 的记录
            latest = self.repository.get_review_for(submission.id, actor.id)
            if not latest:
                raise
            return self._complete(latest, updates), None
        except SubmissionNotReviewable as e:
            raise _not_reviewable(e, "Submission is not available for review") from e

        advanced = self.submissions.advance_to_under_review(submission.id)
        return review, advanced

    def get_review_summary(self, submission_id: str, actor: Actor) -> ReviewSummary:
        submission = self.submissions.load(submission_id)
        if not actor.has_any_role(EDITORIAL_ROLES) and actor.id != submission.author_id:
            raise Forbidden("You cannot view reviews of this submission", precondition="ownership")

        summary = ReviewSummary(submission_id=submission.id)
        for row in self.repository.list_reviews(submission.id, completed_only=True):
            rec = normalize_recommendation(row.get("recommendation"))
            if not row.get("submitted_at") or rec is None:
                continue
            summary.total_reviews += 1
            summary.recommendations[rec] += 1
        return summary

    def list_reviews(self, submission_id: str, actor: Actor) -> list[Review]:
        if not actor.has_any_role(EDITORIAL_ROLES):
            raise Forbidden("Only editors and admins can list reviews")
        submission = self.submissions.load(submission_id)
        return [Review.model_validate(r) for r in self.repository.list_reviews(submission.id)]

    def get_reviewer_queue(self, actor: Actor) -> ReviewerQueue:
        if not actor.has_any_role(REVIEW_CAPABLE_ROLES):
            raise Forbidden("Only reviewers can view review tasks")
        reviews = [Review.model_validate(r) for r in self.repository.list_reviews_by_reviewer(actor.id)]
        pending = [r for r in reviews if not r.is_completed]
        completed = [r for r in reviews if r.is_completed]
        return ReviewerQueue(
            pending=pending,
            completed=completed,
            pending_count=len(pending),
            total_reviews=len(completed),
        )

    def get_review_statistics(self, actor: Actor) -> ReviewStatistics:
        if not actor.has_any_role(EDITORIAL_ROLES):
            raise Forbidden("Only editors and admins can view review statistics")

        stats = ReviewStatistics()
        total_days = 0.0
        timed = 0
        for row in self.repository.list_completed_reviews():
            rec = normalize_recommendation(row.get("recommendation"))
            if rec is None:
                continue
            stats.total_reviews += 1
            stats.recommendations[rec] += 1

            reviewed_at = _parse_ts(row.get("submitted_at"))
            submitted_at = _parse_ts(row.get("submission_submitted_at"))
            if reviewed_at is None or submitted_at is None:
                continue
            days = (reviewed_at - submitted_at).total_seconds() / 86400
            if days >= 0:
                total_days += days
                timed += 1
        stats.average_review_days = total_days / timed if timed else 0.0
        return stats
