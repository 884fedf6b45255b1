from __future__ import annotations

from typing import Any, Iterable


class WorkflowError(Exception):
    """
    工作流领域错误的基类。

    中文注释:
    - Service 层只抛领域错误，不依赖 FastAPI；API 层由统一 handler 转成 HTTP 响应。
    - precondition 标明失败的前置条件（role/ownership/state/uniqueness/input/existence），
      便于调用方渲染可操作的提示。
    """

    code = "workflow_error"
    precondition = "state"
    status_code = 400

    def __init__(self, detail: str, **context: Any) -> None:
        super().__init__(detail)
        self.detail = detail
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {
            "detail": self.detail,
            "type": self.code,
            "precondition": self.precondition,
        }


class NotFound(WorkflowError):
    code = "not_found"
    precondition = "existence"
    status_code = 404


class Forbidden(WorkflowError):
    code = "forbidden"
    precondition = "role"
    status_code = 403

    def __init__(self, detail: str, *, precondition: str = "role", **context: Any) -> None:
        super().__init__(detail, **context)
        self.precondition = precondition


class InvalidRole(WorkflowError):
    code = "invalid_role"
    precondition = "role"
    status_code = 422


class InvalidTransition(WorkflowError):
    code = "invalid_transition"
    precondition = "state"
    status_code = 409


class InvalidState(WorkflowError):
    code = "invalid_state"
    precondition = "state"
    status_code = 409


class InvalidSubmissionState(InvalidState):
    code = "invalid_submission_state"


class UniquenessViolation(WorkflowError):
    code = "conflict"
    precondition = "uniqueness"
    status_code = 409


class AlreadyAssigned(UniquenessViolation):
    code = "already_assigned"


class AlreadyCompleted(UniquenessViolation):
    code = "already_completed"


class AlreadyReviewed(UniquenessViolation):
    code = "already_reviewed"


class ValidationError(WorkflowError):
    code = "validation_error"
    precondition = "input"
    status_code = 422

    def __init__(self, errors: Iterable[str] | str, **context: Any) -> None:
        items = [errors] if isinstance(errors, str) else [str(e) for e in errors]
        super().__init__("; ".join(items) or "Invalid input", **context)
        self.errors = items

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        out["errors"] = list(self.errors)
        return out


class DuplicateReviewRow(Exception):
    """
    持久化层在 (submission_id, reviewer_id) 唯一约束冲突时抛出；由 ReviewService 翻译为 Already*。
    """

    def __init__(self, submission_id: str, reviewer_id: str) -> None:
        super().__init__(f"review already exists for {submission_id}/{reviewer_id}")
        self.submission_id = submission_id
        self.reviewer_id = reviewer_id


class SubmissionNotReviewable(Exception):
    """
    持久化层拒绝插入 Review：写入时稿件状态已不允许审稿（终态，或直接审稿时不在 submitted/under_review）。

    中文注释: Postgres 由 reviews 的 before insert 触发器在同一语句内判断，不依赖之前的读取。
    """

    def __init__(self, submission_id: str, status: str | None = None) -> None:
        super().__init__(f"submission {submission_id} is not reviewable (status={status})")
        self.submission_id = submission_id
        self.status = status


class SubmissionStillReferenced(Exception):
    """删除稿件时仍有 Review 引用（外键 on delete restrict）。"""

    def __init__(self, submission_id: str) -> None:
        super().__init__(f"submission {submission_id} is still referenced by reviews")
        self.submission_id = submission_id
