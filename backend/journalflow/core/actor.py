from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from journalflow.models.user import Role, normalize_role

EDITORIAL_ROLES = (Role.EDITOR, Role.ADMIN)
REVIEW_CAPABLE_ROLES = (Role.REVIEWER, Role.EDITOR, Role.ADMIN)
SUBMITTING_ROLES = (Role.AUTHOR, Role.ADMIN)


@dataclass(frozen=True)
class Actor:
    """
    已认证的调用者（身份 + 单一角色）。

    中文注释:
    - 每个 Service 操作都显式接收 Actor，不读取任何全局“当前用户”。
    - 角色判断统一走 has_any_role，避免在各处散落字符串比较。
    """

    id: str
    role: Role

    def has_any_role(self, *allowed: Role | str | Iterable[Role | str]) -> bool:
        wanted: set[Role] = set()
        for item in allowed:
            # Role 本身是 str 子类，必须在“可迭代”分支之前识别
            candidates = [item] if isinstance(item, (Role, str)) else list(item)
            for c in candidates:
                r = c if isinstance(c, Role) else normalize_role(c)
                if r is not None:
                    wanted.add(r)
        return self.role in wanted
