import os
from dataclasses import dataclass
from typing import Optional


def _env_bool(key: str, default: bool) -> bool:
    raw = os.environ.get(key)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    return lowered in {"1", "true", "yes", "y", "on"}


def _env_int(key: str, default: int) -> int:
    raw = (os.environ.get(key) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


STORAGE_BACKENDS = {"supabase", "memory"}


@dataclass(frozen=True)
class AppConfig:
    """
    Supabase 连接配置（URL + service role key）。
    """

    supabase_url: str
    supabase_key: str

    @staticmethod
    def from_env() -> "AppConfig":
        # Staging swaps SUPABASE_URL at the platform level (Docker/Vercel), so one key is enough.
        supabase_url = (os.environ.get("SUPABASE_URL") or "").strip()
        supabase_key = (os.environ.get("SUPABASE_SERVICE_ROLE_KEY") or "").strip()

        return AppConfig(
            supabase_url=supabase_url,
            supabase_key=supabase_key
        )

# Global Config Instance
app_config = AppConfig.from_env()


@dataclass(frozen=True)
class WorkflowConfig:
    """
    投稿/审稿工作流配置

    中文注释:
    1) storage_backend 决定持久化实现：supabase（PostgREST）或 memory（本地/测试）。
    2) allow_direct_review 控制“无指派直接提交审稿意见”通道，关闭后只能先指派再提交。
    3) 通知默认同步投递（失败只记日志）；开启 notifications_async 后放入线程池，不阻塞请求。
    """

    storage_backend: str
    allow_direct_review: bool
    notifications_async: bool
    notification_workers: int
    manuscript_bucket: str
    manuscript_max_bytes: int

    @staticmethod
    def from_env() -> "WorkflowConfig":
        backend = (os.environ.get("JOURNALFLOW_STORAGE_BACKEND") or "supabase").strip().lower()
        if backend not in STORAGE_BACKENDS:
            raise RuntimeError(
                f"JOURNALFLOW_STORAGE_BACKEND must be one of {sorted(STORAGE_BACKENDS)}, got {backend!r}"
            )

        workers = _env_int("JOURNALFLOW_NOTIFICATION_WORKERS", 2)
        max_bytes = _env_int("MANUSCRIPT_MAX_BYTES", 20 * 1024 * 1024)

        return WorkflowConfig(
            storage_backend=backend,
            allow_direct_review=_env_bool("JOURNALFLOW_ALLOW_DIRECT_REVIEW", True),
            notifications_async=_env_bool("JOURNALFLOW_NOTIFICATIONS_ASYNC", False),
            notification_workers=max(1, workers),
            manuscript_bucket=(os.environ.get("MANUSCRIPT_BUCKET") or "manuscripts").strip(),
            manuscript_max_bytes=max(1, max_bytes),
        )


@dataclass(frozen=True)
class SentryConfig:
    """
    Sentry 错误上报配置（缺省关闭）
    """

    enabled: bool
    dsn: Optional[str]
    environment: str
    traces_sample_rate: float

    @staticmethod
    def from_env() -> "SentryConfig":
        dsn = (os.environ.get("SENTRY_DSN") or "").strip() or None
        enabled = _env_bool("SENTRY_ENABLED", bool(dsn))

        rate_raw = (os.environ.get("SENTRY_TRACES_SAMPLE_RATE") or "0").strip()
        try:
            rate = float(rate_raw)
        except ValueError:
            rate = 0.0

        environment = (
            os.environ.get("SENTRY_ENVIRONMENT") or os.environ.get("APP_ENV") or "development"
        ).strip()

        return SentryConfig(
            enabled=enabled,
            dsn=dsn,
            environment=environment,
            traces_sample_rate=min(max(rate, 0.0), 1.0),
        )


def get_admin_emails() -> set[str]:
    """
    ADMIN_EMAILS（逗号分隔）中的账号首次登录时自动获得 admin 角色，便于本地/演示环境。
    """
    raw = os.environ.get("ADMIN_EMAILS", "")
    return {e.strip().lower() for e in raw.split(",") if e.strip()}
