from __future__ import annotations

import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from contextlib import contextmanager
from contextvars import ContextVar
from enum import Enum
from typing import Any, Callable, Dict, Iterator, Optional

from postgrest.exceptions import APIError

from journalflow.lib.api_client import supabase_admin

logger = logging.getLogger("journalflow.notifications")

Pending = list[tuple["NotificationEvent", str, Dict[str, Any]]]


class NotificationEvent(str, Enum):
    ASSIGNED = "assigned"
    COMPLETED = "completed"
    STATUS_CHANGED = "status_changed"


_TITLES = {
    NotificationEvent.ASSIGNED: "New review assignment",
    NotificationEvent.COMPLETED: "Review completed",
    NotificationEvent.STATUS_CHANGED: "Submission status updated",
}


def render_message(event: NotificationEvent, payload: Dict[str, Any]) -> tuple[str, str]:
    title = _TITLES[event]
    manuscript = str(payload.get("title") or "your submission")
    if event == NotificationEvent.ASSIGNED:
        content = f'You have been assigned to review "{manuscript}".'
    elif event == NotificationEvent.COMPLETED:
        rec = payload.get("recommendation")
        content = f'A review of "{manuscript}" has been submitted'
        content += f" (recommendation: {rec})." if rec else "."
    else:
        content = f'"{manuscript}" moved from {payload.get("from_status")} to {payload.get("to_status")}.'
        if payload.get("comments"):
            content += f" Editor comments: {payload['comments']}"
    return title, content


class NotificationService:
    """
    通知服务：封装 notifications 表的写入

    中文注释:
    1) 写入使用 supabase_admin（service_role），避免 RLS 导致写入失败。
    2) 写入失败只记日志并返回 None，绝不向上抛出。
    """

    def __init__(self, client: Any = None) -> None:
        self.client = client if client is not None else supabase_admin

    @staticmethod
    def _default_action_url(type: str, submission_id: Optional[str]) -> str:
        if type == NotificationEvent.ASSIGNED.value:
            return "/dashboard?tab=reviewer"
        if submission_id:
            return f"/dashboard/submissions/{submission_id}"
        return "/dashboard/notifications"

    def create_notification(
        self,
        *,
        user_id: str,
        submission_id: Optional[str],
        type: str,
        title: str,
        content: str,
        action_url: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        payload = {
            "user_id": user_id,
            "submission_id": submission_id,
            "action_url": action_url or self._default_action_url(type, submission_id),
            "type": type,
            "title": title,
            "content": content,
            "is_read": False,
        }
        try:
            res = self.client.table("notifications").insert(payload).execute()
            rows = getattr(res, "data", None) or []
            return rows[0] if rows else None
        except APIError as e:
            # 中文注释:
            # - notifications.user_id 有外键指向 auth.users(id)；对仅展示用途的 mock 用户写通知会触发 23503。
            # - 该情况对主流程无影响，这里静默忽略。
            text = str(e).lower()
            code = str(getattr(e, "code", "") or "").lower()
            if "23503" in code or "23503" in text:
                if "notifications_user_id_fkey" in text or "foreign key" in text:
                    return None
            logger.warning("create notification failed: %s", e)
            return None
        except Exception as e:
            logger.warning("create notification failed: %s", e)
            return None

    def send(self, event: NotificationEvent, recipient_id: str, payload: Dict[str, Any]) -> None:
        title, content = render_message(event, payload)
        self.create_notification(
            user_id=recipient_id,
            submission_id=payload.get("submission_id"),
            type=event.value,
            title=title,
            content=content,
        )


class LogNotificationSink:
    """内存后端 / 本地开发使用：只把通知写进日志。"""

    def send(self, event: NotificationEvent, recipient_id: str, payload: Dict[str, Any]) -> None:
        title, content = render_message(event, payload)
        logger.info("[notify] %s -> %s: %s | %s", event.value, recipient_id, title, content)


class NotificationDispatcher:
    """
    Fire-and-forget 通知投递。

    中文注释:
    - notify() 从不抛异常、从不返回投递结果：通知失败不能影响触发它的状态流转。
    - 配置了 executor 时在后台线程投递，慢通道不会阻塞请求；否则同步投递但同样吞掉异常。
    - 不做重试，丢失的通知只记日志。
    - deferred() 作用域内的通知先暂存，作用域正常结束后交给调用方的调度器（FastAPI BackgroundTasks），
      响应发出后再投递；作用域内抛异常则全部丢弃。
    """

    def __init__(self, sink: Any, *, executor: Optional[Executor] = None) -> None:
        self.sink = sink
        self.executor = executor
        self._pending: ContextVar[Optional[Pending]] = ContextVar("journalflow_pending_notifications", default=None)

    @classmethod
    def with_thread_pool(cls, sink: Any, *, workers: int) -> "NotificationDispatcher":
        return cls(sink, executor=ThreadPoolExecutor(max_workers=workers, thread_name_prefix="notify"))

    def _deliver(self, event: NotificationEvent, recipient_id: str, payload: Dict[str, Any]) -> None:
        try:
            self.sink.send(event, recipient_id, payload)
        except Exception as e:
            logger.warning("notification %s to %s dropped: %s", event.value, recipient_id, e)

    def notify(self, event: NotificationEvent | str, recipient_id: Optional[str], payload: Dict[str, Any]) -> None:
        if not recipient_id:
            return
        try:
            evt = NotificationEvent(event)
        except ValueError:
            logger.warning("unknown notification event %r dropped", event)
            return
        body = dict(payload or {})
        pending = self._pending.get()
        if pending is not None:
            pending.append((evt, str(recipient_id), body))
            return
        if self.executor is None:
            self._deliver(evt, str(recipient_id), body)
            return
        try:
            self.executor.submit(self._deliver, evt, str(recipient_id), body)
        except RuntimeError as e:
            # executor 已关闭（进程退出中）
            logger.warning("notification %s to %s dropped: %s", evt.value, recipient_id, e)

    @contextmanager
    def deferred(self, schedule: Callable[..., Any]) -> Iterator[None]:
        """
        推迟投递到请求结束之后。

        用法（路由内）:
            with workflow.notifier.deferred(background_tasks.add_task):
                workflow.reviews.assign_reviewer(...)
        """
        pending: Pending = []
        token = self._pending.set(pending)
        try:
            yield
        finally:
            self._pending.reset(token)
        for evt, recipient_id, body in pending:
            schedule(self._deliver, evt, recipient_id, body)

    def shutdown(self) -> None:
        if self.executor is not None:
            self.executor.shutdown(wait=True)
