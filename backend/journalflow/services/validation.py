"""
投稿数据校验（纯函数，写入前执行，保证不产生部分写入）。
"""

from __future__ import annotations

import re
from typing import Iterable, Optional

from journalflow.core.errors import ValidationError

TITLE_MAX_CHARS = 200
ABSTRACT_MAX_WORDS = 500
KEYWORDS_MIN = 3
KEYWORDS_MAX = 10
COMMENTS_MAX_CHARS = 20000

_WORD_RE = re.compile(r"\S+")


def count_words(text: str) -> int:
    return len(_WORD_RE.findall(text or ""))


def clean_list(values: Optional[Iterable[str]]) -> list[str]:
    return [str(v).strip() for v in (values or [])]


def submission_errors(
    *,
    title: Optional[str],
    abstract: Optional[str],
    keywords: Optional[Iterable[str]],
    co_authors: Optional[Iterable[str]],
    manuscript_reference: Optional[str],
) -> list[str]:
    errors: list[str] = []

    t = (title or "").strip()
    if not t:
        errors.append("Title is required")
    elif len(t) > TITLE_MAX_CHARS:
        errors.append(f"Title must be {TITLE_MAX_CHARS} characters or less")

    a = (abstract or "").strip()
    if not a:
        errors.append("Abstract is required")
    elif count_words(a) > ABSTRACT_MAX_WORDS:
        errors.append(f"Abstract must be {ABSTRACT_MAX_WORDS} words or less")

    kws = clean_list(keywords)
    if len(kws) < KEYWORDS_MIN:
        errors.append(f"At least {KEYWORDS_MIN} keywords are required")
    elif len(kws) > KEYWORDS_MAX:
        errors.append(f"Maximum {KEYWORDS_MAX} keywords allowed")
    for i, kw in enumerate(kws):
        if not kw:
            errors.append(f"Keyword {i + 1} cannot be empty")

    for i, name in enumerate(clean_list(co_authors)):
        if not name:
            errors.append(f"Co-author {i + 1} cannot be empty")

    if not (manuscript_reference or "").strip():
        errors.append("Manuscript file is required")

    return errors


def validate_submission(**fields) -> None:
    errors = submission_errors(**fields)
    if errors:
        raise ValidationError(errors)


def require_reference(reference: Optional[str]) -> str:
    ref = (reference or "").strip()
    if not ref:
        raise ValidationError("Manuscript reference is required")
    return ref


def validate_review_comments(comments: Optional[str]) -> str:
    text = (comments or "").strip()
    if not text:
        raise ValidationError("Review comments are required")
    if len(text) > COMMENTS_MAX_CHARS:
        raise ValidationError(f"Review comments must be {COMMENTS_MAX_CHARS} characters or less")
    return text
