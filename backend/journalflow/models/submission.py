from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SubmissionStatus(str, Enum):
    """
    稿件生命周期状态。

    中文注释:
    - 状态机规则集中在 allowed_next，Service 层统一校验流转，API/前端不得绕过。
    - accepted / rejected 为终态：出版流程不属于本子系统。
    """

    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    REVISIONS_REQUIRED = "revisions_required"
    ACCEPTED = "accepted"
    REJECTED = "rejected"

    @classmethod
    def allowed_next(cls, current: str) -> set[str]:
        """
        - submitted -> under_review（首个审稿人指派时自动，或编辑手动）
        - under_review -> revisions_required / accepted / rejected
        - revisions_required -> submitted / under_review / accepted / rejected（作者重传后仍需编辑手动推进）
        - accepted / rejected -> 无
        """
        c = (current or "").strip().lower()
        if c == cls.SUBMITTED.value:
            return {cls.UNDER_REVIEW.value}
        if c == cls.UNDER_REVIEW.value:
            return {
                cls.REVISIONS_REQUIRED.value,
                cls.ACCEPTED.value,
                cls.REJECTED.value,
            }
        if c == cls.REVISIONS_REQUIRED.value:
            return {
                cls.SUBMITTED.value,
                cls.UNDER_REVIEW.value,
                cls.ACCEPTED.value,
                cls.REJECTED.value,
            }
        return set()

    @classmethod
    def terminal(cls) -> set[str]:
        return {cls.ACCEPTED.value, cls.REJECTED.value}


REVIEWABLE_STATUSES = {
    SubmissionStatus.SUBMITTED.value,
    SubmissionStatus.UNDER_REVIEW.value,
}


def accepts_new_review(status: str, *, direct: bool) -> bool:
    """
    稿件在该状态下能否新增一条 Review。

    - 终态不再接受任何 Review；
    - 无指派直接提交（direct）只允许 submitted / under_review。
    """
    if status in SubmissionStatus.terminal():
        return False
    return not direct or status in REVIEWABLE_STATUSES


def normalize_status(value: str | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, Enum):
        value = value.value
    v = str(value).strip().lower()
    if not v:
        return None
    try:
        return SubmissionStatus(v).value
    except ValueError:
        return None


class Submission(BaseModel):
    """数据库中的完整稿件模型（public.submissions）"""

    id: str
    title: str
    abstract: str
    keywords: List[str] = Field(default_factory=list)
    author_id: str
    co_authors: List[str] = Field(default_factory=list)
    status: SubmissionStatus = SubmissionStatus.SUBMITTED
    manuscript_reference: str
    editor_comments: Optional[str] = None
    submitted_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class SubmissionStatistics(BaseModel):
    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
