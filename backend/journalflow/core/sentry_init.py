from typing import Any, Iterable

from journalflow.core.config import SentryConfig

FILTERED = "[Filtered]"

_CREDENTIAL_KEYS = {
    "password",
    "access_token",
    "token",
    "authorization",
    "cookie",
    "supabase_key",
    "service_role_key",
    "jwt_secret",
}

# 审稿与稿件的保密内容：按字段名整体替换，不论长短
_CONFIDENTIAL_KEYS = {
    "comments",
    "editor_comments",
    "abstract",
    "manuscript_reference",
    "text",
    "content",
    "file",
}

_FILTERED_KEYS = _CREDENTIAL_KEYS | _CONFIDENTIAL_KEYS


def _is_filtered_key(key: Any) -> bool:
    return str(key).strip().lower() in _FILTERED_KEYS


def _is_manuscript_payload(value: Any) -> bool:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value[:8]).startswith(b"%PDF-")
    return False


def _scrub(value: Any) -> Any:
    """
    递归清洗：凭据与保密字段按 key 替换，PDF 原始字节按内容替换。
    """
    if _is_manuscript_payload(value):
        return FILTERED
    if isinstance(value, dict):
        return {str(k): FILTERED if _is_filtered_key(k) else _scrub(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_scrub(v) for v in value]
    return value


def _frames(event: dict[str, Any]) -> Iterable[dict[str, Any]]:
    exception = event.get("exception")
    values = exception.get("values") if isinstance(exception, dict) else None
    for entry in values or []:
        stacktrace = entry.get("stacktrace") if isinstance(entry, dict) else None
        frames = stacktrace.get("frames") if isinstance(stacktrace, dict) else None
        for frame in frames or []:
            if isinstance(frame, dict):
                yield frame


def _before_send(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any] | None:
    # 中文注释: 请求体（multipart/pdf、审稿意见）一律不上传；局部变量里的审稿意见同样按 key 清洗。
    request = event.get("request")
    if isinstance(request, dict):
        headers = request.get("headers")
        if isinstance(headers, dict):
            request["headers"] = {k: v for k, v in headers.items() if not _is_filtered_key(k)}
        for field in ("cookies", "data", "body"):
            if field in request:
                request[field] = FILTERED

    for section in ("extra", "contexts"):
        obj = event.get(section)
        if isinstance(obj, dict):
            event[section] = _scrub(obj)

    for frame in _frames(event):
        if isinstance(frame.get("vars"), dict):
            frame["vars"] = _scrub(frame["vars"])

    breadcrumbs = event.get("breadcrumbs")
    values = breadcrumbs.get("values") if isinstance(breadcrumbs, dict) else None
    for crumb in values or []:
        if isinstance(crumb, dict) and isinstance(crumb.get("data"), dict):
            crumb["data"] = _scrub(crumb["data"])

    return event


def init_sentry(storage_backend: str | None = None) -> bool:
    """
    初始化 Sentry。

    零崩溃原则：
    - 若未配置 DSN / 显式禁用，则直接返回 False。
    - 任何初始化异常都应在调用方 try/except 处理，不得阻塞启动。
    """
    cfg = SentryConfig.from_env()
    if not cfg.enabled or not cfg.dsn:
        return False

    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration

    sentry_sdk.init(
        dsn=cfg.dsn,
        environment=cfg.environment,
        traces_sample_rate=cfg.traces_sample_rate,
        integrations=[FastApiIntegration()],
        send_default_pii=False,
        before_send=_before_send,
        max_request_body_size="never",
    )
    if storage_backend:
        sentry_sdk.set_tag("storage_backend", storage_backend)
    return True
