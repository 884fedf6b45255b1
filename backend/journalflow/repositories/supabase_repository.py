from __future__ import annotations

import logging
from collections import Counter
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from postgrest.exceptions import APIError

from journalflow.core.errors import DuplicateReviewRow, SubmissionNotReviewable, SubmissionStillReferenced
from journalflow.lib.api_client import supabase_admin
from journalflow.models.submission import SubmissionStatus
from journalflow.repositories.base import Row, WorkflowRepository

logger = logging.getLogger("journalflow.repository")

SUBMISSION_COLUMNS = (
    "id,title,abstract,keywords,author_id,co_authors,status,"
    "manuscript_reference,editor_comments,submitted_at,updated_at"
)
REVIEW_COLUMNS = "id,submission_id,reviewer_id,comments,recommendation,assigned_by,assigned_at,submitted_at"
COMPLETED_REVIEW_COLUMNS = "recommendation,assigned_at,submitted_at,submissions:submission_id(submitted_at)"
USER_COLUMNS = "id,email,full_name,affiliation,role"


def _rows(resp: Any) -> list[Row]:
    data = getattr(resp, "data", None)
    if data is None:
        return []
    if isinstance(data, dict):
        return [data]
    return list(data)


def _first(resp: Any) -> Optional[Row]:
    rows = _rows(resp)
    return rows[0] if rows else None


def is_unique_violation(err: Exception, *, constraint: str | None = None) -> bool:
    """
    判断 PostgREST 返回的唯一约束冲突（SQLSTATE 23505）。

    中文注释: supabase/postgrest 的 APIError 在不同版本里字段不完全一致，code 缺失时从字符串兜底解析。
    """
    if not isinstance(err, APIError):
        return False
    code = str(getattr(err, "code", "") or "").lower()
    text = str(err).lower()
    hit = "23505" in code or "23505" in text or "duplicate key" in text
    if not hit:
        return False
    if constraint:
        return constraint.lower() in text or "23505" in code
    return True


def is_foreign_key_violation(err: Exception) -> bool:
    """外键冲突（SQLSTATE 23503），例如删除仍被 reviews 引用的稿件。"""
    if not isinstance(err, APIError):
        return False
    code = str(getattr(err, "code", "") or "").lower()
    text = str(err).lower()
    return "23503" in code or "23503" in text or "foreign key constraint" in text


def is_not_reviewable(err: Exception) -> bool:
    # reviews_require_reviewable_submission 触发器抛出的错误
    return isinstance(err, APIError) and "submission_not_reviewable" in str(err).lower()


class SupabaseWorkflowRepository(WorkflowRepository):
    """
    Supabase / PostgREST 实现。

    中文注释:
    - PostgREST 不支持跨请求的显式事务，因此 transaction() 不持有任何锁；
      正确性依靠数据库约束与条件写：
      1) reviews(submission_id, reviewer_id) UNIQUE —— 并发指派只有一个 insert 成功；
      2) update ... where status = expected —— 状态流转是 compare-and-set；
      3) update ... where submitted_at is null —— 审稿意见只能写一次。
      4) reviews 的 before insert 触发器在插入时重新检查稿件状态（不可审则拒绝）。
    - 统一使用 service_role client（supabase_admin），鉴权在 Service 层按 Actor 完成。
    """

    backend = "supabase"

    def __init__(self, client: Any = None) -> None:
        self.client = client if client is not None else supabase_admin

    @contextmanager
    def transaction(self, submission_id: str) -> Iterator[None]:
        yield

    # === submissions ===
    def get_submission(self, submission_id: str) -> Optional[Row]:
        resp = (
            self.client.table("submissions")
            .select(SUBMISSION_COLUMNS)
            .eq("id", submission_id)
            .limit(1)
            .execute()
        )
        return _first(resp)

    def insert_submission(self, row: Row) -> Row:
        resp = self.client.table("submissions").insert(row).execute()
        return _first(resp) or dict(row)

    def update_submission(
        self,
        submission_id: str,
        updates: Row,
        *,
        expected_status: Optional[str] = None,
    ) -> Optional[Row]:
        query = self.client.table("submissions").update(updates).eq("id", submission_id)
        if expected_status is not None:
            query = query.eq("status", expected_status)
        return _first(query.execute())

    def delete_submission(self, submission_id: str) -> bool:
        try:
            resp = self.client.table("submissions").delete().eq("id", submission_id).execute()
        except APIError as e:
            if is_foreign_key_violation(e):
                raise SubmissionStillReferenced(str(submission_id)) from e
            logger.error("delete submission failed: %s", e)
            raise
        return bool(_rows(resp))

    def count_submissions_by_status(self) -> dict[str, int]:
        resp = self.client.table("submissions").select("status").execute()
        counts = Counter(str(r.get("status") or "") for r in _rows(resp))
        return {s.value: counts.get(s.value, 0) for s in SubmissionStatus}

    # === reviews ===
    def get_review_for(self, submission_id: str, reviewer_id: str) -> Optional[Row]:
        resp = (
            self.client.table("reviews")
            .select(REVIEW_COLUMNS)
            .eq("submission_id", submission_id)
            .eq("reviewer_id", reviewer_id)
            .limit(1)
            .execute()
        )
        return _first(resp)

    def list_reviews(self, submission_id: str, *, completed_only: bool = False) -> list[Row]:
        query = self.client.table("reviews").select(REVIEW_COLUMNS).eq("submission_id", submission_id)
        if completed_only:
            query = query.not_.is_("submitted_at", "null")
        return _rows(query.order("assigned_at", desc=False).execute())

    def list_reviews_by_reviewer(self, reviewer_id: str) -> list[Row]:
        resp = (
            self.client.table("reviews")
            .select(REVIEW_COLUMNS)
            .eq("reviewer_id", reviewer_id)
            .order("assigned_at", desc=True)
            .execute()
        )
        return _rows(resp)

    def list_completed_reviews(self) -> list[Row]:
        resp = (
            self.client.table("reviews")
            .select(COMPLETED_REVIEW_COLUMNS)
            .not_.is_("submitted_at", "null")
            .execute()
        )
        rows = []
        for r in _rows(resp):
            row = dict(r)
            embedded = row.pop("submissions", None) or {}
            if isinstance(embedded, list):
                embedded = embedded[0] if embedded else {}
            row["submission_submitted_at"] = embedded.get("submitted_at")
            rows.append(row)
        return rows

    def insert_review(self, row: Row) -> Row:
        try:
            resp = self.client.table("reviews").insert(row).execute()
        except APIError as e:
            if is_unique_violation(e, constraint="reviews_submission_reviewer_key"):
                raise DuplicateReviewRow(str(row["submission_id"]), str(row["reviewer_id"])) from e
            if is_not_reviewable(e):
                # 触发器消息格式: "submission_not_reviewable: <status>"
                status = str(getattr(e, "message", "") or "").partition(":")[2].strip() or None
                raise SubmissionNotReviewable(str(row["submission_id"]), status) from e
            logger.error("insert review failed: %s", e)
            raise
        return _first(resp) or dict(row)

    def complete_review(self, review_id: str, updates: Row) -> Optional[Row]:
        resp = (
            self.client.table("reviews")
            .update(updates)
            .eq("id", review_id)
            .is_("submitted_at", "null")
            .execute()
        )
        return _first(resp)

    def delete_reviews_for_submission(self, submission_id: str) -> int:
        resp = self.client.table("reviews").delete().eq("submission_id", submission_id).execute()
        return len(_rows(resp))

    # === users ===
    def get_user(self, user_id: str) -> Optional[Row]:
        resp = (
            self.client.table("user_profiles")
            .select(USER_COLUMNS)
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
        return _first(resp)

    def upsert_user(self, row: Row) -> Row:
        resp = self.client.table("user_profiles").upsert(row).execute()
        return _first(resp) or dict(row)
