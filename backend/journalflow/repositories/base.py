from __future__ import annotations

from typing import Any, ContextManager, Optional

Row = dict[str, Any]


class WorkflowRepository:
    """
    投稿/审稿工作流的唯一持久化接口。

    中文注释:
    - Service 层只依赖这里的方法；具体实现（Supabase / 内存）由配置选择。
    - transaction(submission_id) 是“按稿件串行化”的边界：读-判断-写 必须在其内完成。
    - insert_review 必须由存储本身保证 (submission_id, reviewer_id) 唯一，冲突时抛 DuplicateReviewRow。
    - 带 expected_status 的 update_submission 与 complete_review 都是条件写：返回 None 表示条件不满足（竞争失败）。
    """

    backend = "abstract"

    def transaction(self, submission_id: str) -> ContextManager[None]:
        raise NotImplementedError

    # === submissions ===
    def get_submission(self, submission_id: str) -> Optional[Row]:
        raise NotImplementedError

    def insert_submission(self, row: Row) -> Row:
        raise NotImplementedError

    def update_submission(
        self,
        submission_id: str,
        updates: Row,
        *,
        expected_status: Optional[str] = None,
    ) -> Optional[Row]:
        raise NotImplementedError

    def delete_submission(self, submission_id: str) -> bool:
        """仍有 Review 引用时抛 SubmissionStillReferenced。"""
        raise NotImplementedError

    def count_submissions_by_status(self) -> dict[str, int]:
        raise NotImplementedError

    # === reviews ===
    def get_review_for(self, submission_id: str, reviewer_id: str) -> Optional[Row]:
        raise NotImplementedError

    def list_reviews(self, submission_id: str, *, completed_only: bool = False) -> list[Row]:
        raise NotImplementedError

    def list_reviews_by_reviewer(self, reviewer_id: str) -> list[Row]:
        raise NotImplementedError

    def list_completed_reviews(self) -> list[Row]:
        """已提交的 Review，附带所属稿件的 submitted_at（字段名 submission_submitted_at）。"""
        raise NotImplementedError

    def insert_review(self, row: Row) -> Row:
        """
        插入一条 Review。

        中文注释:
        - (submission_id, reviewer_id) 已存在时抛 DuplicateReviewRow；
        - 写入时刻稿件已不可审（终态，或直接提交时不在 submitted / under_review）抛 SubmissionNotReviewable。
        """
        raise NotImplementedError

    def complete_review(self, review_id: str, updates: Row) -> Optional[Row]:
        raise NotImplementedError

    def delete_reviews_for_submission(self, submission_id: str) -> int:
        raise NotImplementedError

    # === users (identity directory, read-mostly) ===
    def get_user(self, user_id: str) -> Optional[Row]:
        raise NotImplementedError

    def upsert_user(self, row: Row) -> Row:
        raise NotImplementedError
