from enum import Enum
from typing import Optional


class Role(str, Enum):
    AUTHOR = "author"
    REVIEWER = "reviewer"
    EDITOR = "editor"
    ADMIN = "admin"


def normalize_role(value: object) -> Optional[Role]:
    # str(Role.X) 是 "Role.X" 而不是值本身，枚举成员必须先取 .value
    if isinstance(value, Enum):
        value = value.value
    raw = str(value or "").strip().lower()
    if not raw:
        return None
    try:
        return Role(raw)
    except ValueError:
        return None
