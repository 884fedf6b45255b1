import pytest

from journalflow.core import config as config_module


def test_workflow_config_defaults(monkeypatch):
    for key in (
        "JOURNALFLOW_STORAGE_BACKEND",
        "JOURNALFLOW_ALLOW_DIRECT_REVIEW",
        "JOURNALFLOW_NOTIFICATIONS_ASYNC",
        "JOURNALFLOW_NOTIFICATION_WORKERS",
        "MANUSCRIPT_BUCKET",
        "MANUSCRIPT_MAX_BYTES",
    ):
        monkeypatch.delenv(key, raising=False)

    cfg = config_module.WorkflowConfig.from_env()

    assert cfg.storage_backend == "supabase"
    assert cfg.allow_direct_review is True
    assert cfg.notifications_async is False
    assert cfg.notification_workers == 2
    assert cfg.manuscript_bucket == "manuscripts"
    assert cfg.manuscript_max_bytes == 20 * 1024 * 1024


def test_workflow_config_from_env(monkeypatch):
    monkeypatch.setenv("JOURNALFLOW_STORAGE_BACKEND", " Memory ")
    monkeypatch.setenv("JOURNALFLOW_ALLOW_DIRECT_REVIEW", "false")
    monkeypatch.setenv("JOURNALFLOW_NOTIFICATIONS_ASYNC", "yes")
    monkeypatch.setenv("JOURNALFLOW_NOTIFICATION_WORKERS", "0")
    monkeypatch.setenv("MANUSCRIPT_MAX_BYTES", "not-a-number")

    cfg = config_module.WorkflowConfig.from_env()

    assert cfg.storage_backend == "memory"
    assert cfg.allow_direct_review is False
    assert cfg.notifications_async is True
    assert cfg.notification_workers == 1
    assert cfg.manuscript_max_bytes == 20 * 1024 * 1024


def test_workflow_config_rejects_unknown_backend(monkeypatch):
    monkeypatch.setenv("JOURNALFLOW_STORAGE_BACKEND", "sqlite")
    with pytest.raises(RuntimeError, match="JOURNALFLOW_STORAGE_BACKEND"):
        config_module.WorkflowConfig.from_env()


def test_sentry_config(monkeypatch):
    monkeypatch.delenv("SENTRY_ENABLED", raising=False)
    monkeypatch.delenv("SENTRY_DSN", raising=False)
    assert config_module.SentryConfig.from_env().enabled is False

    monkeypatch.setenv("SENTRY_DSN", "https://key@o0.ingest.sentry.io/1")
    monkeypatch.setenv("SENTRY_TRACES_SAMPLE_RATE", "5")
    monkeypatch.setenv("SENTRY_ENVIRONMENT", "staging")
    cfg = config_module.SentryConfig.from_env()
    assert cfg.enabled is True
    assert cfg.traces_sample_rate == 1.0
    assert cfg.environment == "staging"

    monkeypatch.setenv("SENTRY_ENABLED", "0")
    assert config_module.SentryConfig.from_env().enabled is False


def test_app_config_strips_supabase_settings(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", " https://example.supabase.co ")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", " service-key\n")
    cfg = config_module.AppConfig.from_env()
    assert cfg.supabase_url == "https://example.supabase.co"
    assert cfg.supabase_key == "service-key"


def test_admin_emails(monkeypatch):
    monkeypatch.setenv("ADMIN_EMAILS", " Boss@Example.com, ,ops@example.com")
    assert config_module.get_admin_emails() == {"boss@example.com", "ops@example.com"}
