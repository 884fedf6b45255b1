import os
import sys
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import AsyncGenerator

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# 中文注释: 测试统一走内存后端，不依赖 Supabase；必须在导入 app 之前设置。
os.environ.setdefault("JOURNALFLOW_STORAGE_BACKEND", "memory")
os.environ.setdefault("APP_ENV", "test")

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from journalflow.core.actor import Actor
from journalflow.core.config import WorkflowConfig
from journalflow.models.user import Role
from journalflow.repositories.memory import InMemoryWorkflowRepository
from journalflow.services.notification_service import NotificationDispatcher
from journalflow.services.workflow import Workflow, build_workflow, get_workflow

USER_IDS = SimpleNamespace(
    author="00000000-0000-0000-0000-00000000a001",
    other_author="00000000-0000-0000-0000-00000000a002",
    editor="00000000-0000-0000-0000-00000000e001",
    admin="00000000-0000-0000-0000-00000000ad01",
    reviewer_a="00000000-0000-0000-0000-00000000b001",
    reviewer_b="00000000-0000-0000-0000-00000000b002",
)

USER_ROLES = {
    "author": Role.AUTHOR,
    "other_author": Role.AUTHOR,
    "editor": Role.EDITOR,
    "admin": Role.ADMIN,
    "reviewer_a": Role.REVIEWER,
    "reviewer_b": Role.REVIEWER,
}


class RecordingSink:
    """收集投递的通知，便于断言；fail=True 时模拟通知通道故障。"""

    def __init__(self, fail: bool = False) -> None:
        self.sent: list[tuple[str, str, dict]] = []
        self.fail = fail

    def send(self, event, recipient_id, payload) -> None:
        if self.fail:
            raise RuntimeError("smtp down")
        self.sent.append((event.value, recipient_id, payload))

    def events(self, name: str) -> list[tuple[str, str, dict]]:
        return [s for s in self.sent if s[0] == name]


def _seed_users(repo) -> None:
    for name, role in USER_ROLES.items():
        user_id = getattr(USER_IDS, name)
        repo.upsert_user({"id": user_id, "email": f"{name}@example.com", "role": role.value})


@pytest.fixture
def ids() -> SimpleNamespace:
    return USER_IDS


@pytest.fixture
def actors() -> dict[str, Actor]:
    return {name: Actor(id=getattr(USER_IDS, name), role=role) for name, role in USER_ROLES.items()}


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def failing_sink() -> RecordingSink:
    return RecordingSink(fail=True)


@pytest.fixture
def workflow_factory():
    """
    按需装配内存工作流：测试可替换 repository / sink / 配置项。
    """

    def _build(*, repository=None, sink=None, **overrides) -> Workflow:
        values = dict(
            storage_backend="memory",
            allow_direct_review=True,
            notifications_async=False,
            notification_workers=1,
            manuscript_bucket="manuscripts",
            manuscript_max_bytes=1024 * 1024,
        )
        values.update(overrides)
        repo = repository if repository is not None else InMemoryWorkflowRepository()
        _seed_users(repo)
        notifier = NotificationDispatcher(sink if sink is not None else RecordingSink())
        return build_workflow(WorkflowConfig(**values), repository=repo, notifier=notifier)

    return _build


@pytest.fixture
def workflow(workflow_factory, sink) -> Workflow:
    return workflow_factory(sink=sink)


@pytest.fixture
def repo(workflow) -> InMemoryWorkflowRepository:
    return workflow.repository


@pytest.fixture
def submission_fields():
    def _fields(**overrides) -> dict:
        fields = dict(
            title="Soil microbiome shifts under drought",
            abstract="We measure community composition across three seasons of drought stress.",
            keywords=["soil", "microbiome", "drought"],
            co_authors=["A. Mensah", "B. Okafor"],
            manuscript_reference="memory://manuscripts/initial",
        )
        fields.update(overrides)
        return fields

    return _fields


@pytest.fixture
def make_submission(workflow, actors, submission_fields):
    def _make(wf: Workflow | None = None, **overrides):
        target = wf or workflow
        return target.submissions.create_submission(actors["author"], **submission_fields(**overrides))

    return _make


@pytest.fixture
def submission(make_submission):
    return make_submission()


@pytest.fixture
def force_status(repo):
    """直接改写持久化状态，用于构造任意起始状态。"""

    def _force(submission_id: str, status: str) -> None:
        assert repo.update_submission(submission_id, {"status": status}) is not None

    return _force


@pytest.fixture
def pdf_bytes() -> bytes:
    return b"%PDF-1.4\n% test manuscript\n1 0 obj << /Type /Catalog >> endobj\n"


def generate_test_token(user_id: str, email: str = "test@example.com") -> str:
    """
    生成用于测试的 JWT（与 journalflow.core.auth_utils 的默认密钥一致）
    """
    secret = os.environ.get("SUPABASE_JWT_SECRET", "mock-secret-replace-later")
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "email": email,
        "aud": "authenticated",
        "exp": now + timedelta(hours=1),
        "iat": now,
        "role": "authenticated",
    }
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def auth_headers():
    def _headers(user_id: str, email: str | None = None) -> dict[str, str]:
        token = generate_test_token(user_id, email or f"{user_id[-4:]}@example.com")
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest_asyncio.fixture
async def client(workflow) -> AsyncGenerator[AsyncClient, None]:
    """
    提供一个模拟的异步测试客户端（get_workflow 被替换为测试用内存装配）
    """
    from main import app

    app.dependency_overrides[get_workflow] = lambda: workflow
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
            yield ac
    finally:
        app.dependency_overrides.pop(get_workflow, None)
