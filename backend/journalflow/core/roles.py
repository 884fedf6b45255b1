import logging

from fastapi import Depends

from journalflow.core.actor import Actor
from journalflow.core.auth_utils import get_current_user
from journalflow.core.config import get_admin_emails
from journalflow.models.user import Role, normalize_role
from journalflow.services.workflow import Workflow, get_workflow

logger = logging.getLogger("journalflow.auth")


def _is_admin_email(email: str | None) -> bool:
    if not email:
        return False
    return email.strip().lower() in get_admin_emails()


def resolve_actor(current_user: dict, workflow: Workflow) -> Actor:
    """
    把已认证用户映射为 Actor（身份 + 角色）。

    中文注释:
    1) 角色来自 user_profiles.role；首次访问时自动建档，默认 author。
    2) 若 email 在 ADMIN_EMAILS 中，则提升为 admin，便于本地/演示测试。
    """
    user_id = str(current_user["id"])
    email = current_user.get("email")
    repo = workflow.repository

    existing = repo.get_user(user_id)
    if existing:
        role = normalize_role(existing.get("role")) or Role.AUTHOR
        if _is_admin_email(email) and role != Role.ADMIN:
            repo.upsert_user({"id": user_id, "role": Role.ADMIN.value})
            role = Role.ADMIN
        return Actor(id=user_id, role=role)

    role = Role.ADMIN if _is_admin_email(email) else Role.AUTHOR
    repo.upsert_user({"id": user_id, "email": email, "role": role.value})
    logger.info("provisioned profile %s with role %s", user_id, role.value)
    return Actor(id=user_id, role=role)


async def get_current_actor(
    current_user: dict = Depends(get_current_user),
    workflow: Workflow = Depends(get_workflow),
) -> Actor:
    return resolve_actor(current_user, workflow)

