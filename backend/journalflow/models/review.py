from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Recommendation(str, Enum):
    ACCEPT = "accept"
    MINOR_REVISIONS = "minor_revisions"
    MAJOR_REVISIONS = "major_revisions"
    REJECT = "reject"


def normalize_recommendation(value: str | None) -> str | None:
    if isinstance(value, Enum):
        value = value.value
    v = str(value or "").strip().lower()
    if not v:
        return None
    try:
        return Recommendation(v).value
    except ValueError:
        return None


class Review(BaseModel):
    """
    审稿记录（public.reviews）

    submitted_at 为空表示“已指派、待完成”；非空即已完成，之后不可再改（write-once）。
    """

    id: str
    submission_id: str
    reviewer_id: str
    comments: Optional[str] = None
    recommendation: Optional[Recommendation] = None
    assigned_by: Optional[str] = None
    assigned_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    @property
    def is_completed(self) -> bool:
        return self.submitted_at is not None


class ReviewSummary(BaseModel):
    submission_id: str
    total_reviews: int = 0
    recommendations: dict[str, int] = Field(
        default_factory=lambda: {r.value: 0 for r in Recommendation}
    )


class ReviewerQueue(BaseModel):
    pending: list[Review] = Field(default_factory=list)
    completed: list[Review] = Field(default_factory=list)
    pending_count: int = 0
    total_reviews: int = 0


class ReviewStatistics(BaseModel):
    """
    全局审稿统计（编辑 / 管理员可见）

    average_review_days: 已完成 Review 的 submitted_at 减去稿件 submitted_at，按天取平均；
    差值为负（时钟漂移或历史数据）的记录不计入。
    """

    total_reviews: int = 0
    recommendations: dict[str, int] = Field(
        default_factory=lambda: {r.value: 0 for r in Recommendation}
    )
    average_review_days: float = 0.0
