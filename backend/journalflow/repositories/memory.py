from __future__ import annotations

import copy
from collections import Counter
from contextlib import contextmanager
from threading import Lock, RLock
from typing import Iterator, Optional

from journalflow.core.errors import DuplicateReviewRow, SubmissionNotReviewable, SubmissionStillReferenced
from journalflow.models.submission import SubmissionStatus, accepts_new_review
from journalflow.repositories.base import Row, WorkflowRepository


class InMemoryWorkflowRepository(WorkflowRepository):
    """
    进程内实现（本地开发 / 单元测试）。

    中文注释:
    - 每个 submission_id 一把 RLock，作为 transaction 边界；不同稿件互不阻塞。
    - 另有一把数据锁保护字典本身，使唯一性检查+插入、条件更新在单个方法内原子完成，
      即使调用方忘记进入 transaction 也不会产生重复 Review。
    """

    backend = "memory"

    def __init__(self) -> None:
        self._submissions: dict[str, Row] = {}
        self._reviews: dict[str, Row] = {}
        self._review_keys: dict[tuple[str, str], str] = {}
        self._users: dict[str, Row] = {}
        self._data_lock = Lock()
        self._registry_lock = Lock()
        self._submission_locks: dict[str, RLock] = {}

    def _lock_for(self, submission_id: str) -> RLock:
        with self._registry_lock:
            lock = self._submission_locks.get(submission_id)
            if lock is None:
                lock = RLock()
                self._submission_locks[submission_id] = lock
            return lock

    @contextmanager
    def transaction(self, submission_id: str) -> Iterator[None]:
        with self._lock_for(str(submission_id)):
            yield

    # === submissions ===
    def get_submission(self, submission_id: str) -> Optional[Row]:
        with self._data_lock:
            row = self._submissions.get(str(submission_id))
            return copy.deepcopy(row) if row else None

    def insert_submission(self, row: Row) -> Row:
        with self._data_lock:
            if row["id"] in self._submissions:
                raise ValueError(f"submission {row['id']} already exists")
            self._submissions[row["id"]] = copy.deepcopy(row)
            return copy.deepcopy(row)

    def update_submission(
        self,
        submission_id: str,
        updates: Row,
        *,
        expected_status: Optional[str] = None,
    ) -> Optional[Row]:
        with self._data_lock:
            row = self._submissions.get(str(submission_id))
            if row is None:
                return None
            if expected_status is not None and row.get("status") != expected_status:
                return None
            row.update(copy.deepcopy(updates))
            return copy.deepcopy(row)

    def delete_submission(self, submission_id: str) -> bool:
        with self._data_lock:
            sid = str(submission_id)
            if any(r["submission_id"] == sid for r in self._reviews.values()):
                # 与 Postgres 外键一致：仍有 review 引用时拒绝删除
                raise SubmissionStillReferenced(sid)
            removed = self._submissions.pop(sid, None) is not None
        if removed:
            with self._registry_lock:
                self._submission_locks.pop(sid, None)
        return removed

    def count_submissions_by_status(self) -> dict[str, int]:
        with self._data_lock:
            counts = Counter(str(r.get("status") or "") for r in self._submissions.values())
        return {s.value: counts.get(s.value, 0) for s in SubmissionStatus}

    # === reviews ===
    def get_review_for(self, submission_id: str, reviewer_id: str) -> Optional[Row]:
        with self._data_lock:
            review_id = self._review_keys.get((str(submission_id), str(reviewer_id)))
            if review_id is None:
                return None
            return copy.deepcopy(self._reviews[review_id])

    def list_reviews(self, submission_id: str, *, completed_only: bool = False) -> list[Row]:
        with self._data_lock:
            rows = [
                copy.deepcopy(r)
                for r in self._reviews.values()
                if r["submission_id"] == str(submission_id)
                and (not completed_only or r.get("submitted_at"))
            ]
        return rows

    def list_reviews_by_reviewer(self, reviewer_id: str) -> list[Row]:
        with self._data_lock:
            return [copy.deepcopy(r) for r in self._reviews.values() if r["reviewer_id"] == str(reviewer_id)]

    def list_completed_reviews(self) -> list[Row]:
        with self._data_lock:
            rows = []
            for r in self._reviews.values():
                if not r.get("submitted_at"):
                    continue
                submission = self._submissions.get(r["submission_id"]) or {}
                row = copy.deepcopy(r)
                row["submission_submitted_at"] = submission.get("submitted_at")
                rows.append(row)
        return rows

    def insert_review(self, row: Row) -> Row:
        key = (str(row["submission_id"]), str(row["reviewer_id"]))
        with self._data_lock:
            if key in self._review_keys:
                raise DuplicateReviewRow(*key)
            submission = self._submissions.get(key[0])
            if submission is None:
                raise RuntimeError(f"submission {key[0]} does not exist")
            # 与 Postgres 的 before insert 触发器一致：按写入时刻的状态判断
            status = str(submission.get("status") or "")
            direct = not row.get("assigned_by") and bool(row.get("submitted_at"))
            if not accepts_new_review(status, direct=direct):
                raise SubmissionNotReviewable(key[0], status)
            self._reviews[row["id"]] = copy.deepcopy(row)
            self._review_keys[key] = row["id"]
            return copy.deepcopy(row)

    def complete_review(self, review_id: str, updates: Row) -> Optional[Row]:
        with self._data_lock:
            row = self._reviews.get(str(review_id))
            if row is None or row.get("submitted_at"):
                return None
            row.update(copy.deepcopy(updates))
            return copy.deepcopy(row)

    def delete_reviews_for_submission(self, submission_id: str) -> int:
        sid = str(submission_id)
        with self._data_lock:
            doomed = [rid for rid, r in self._reviews.items() if r["submission_id"] == sid]
            for rid in doomed:
                row = self._reviews.pop(rid)
                self._review_keys.pop((row["submission_id"], row["reviewer_id"]), None)
            return len(doomed)

    # === users ===
    def get_user(self, user_id: str) -> Optional[Row]:
        with self._data_lock:
            row = self._users.get(str(user_id))
            return copy.deepcopy(row) if row else None

    def upsert_user(self, row: Row) -> Row:
        with self._data_lock:
            existing = self._users.setdefault(str(row["id"]), {})
            existing.update(copy.deepcopy(row))
            return copy.deepcopy(existing)
