from journalflow.core.roles import resolve_actor
from journalflow.models.user import Role


def test_resolve_actor_uses_profile_role(workflow, ids):
    actor = resolve_actor({"id": ids.reviewer_a, "email": "reviewer_a@example.com"}, workflow)
    assert actor.id == ids.reviewer_a
    assert actor.role is Role.REVIEWER


def test_resolve_actor_provisions_new_users_as_authors(workflow, monkeypatch):
    monkeypatch.delenv("ADMIN_EMAILS", raising=False)

    actor = resolve_actor({"id": "new-user", "email": "new@example.com"}, workflow)

    assert actor.role is Role.AUTHOR
    assert workflow.repository.get_user("new-user") == {
        "id": "new-user",
        "email": "new@example.com",
        "role": "author",
    }


def test_resolve_actor_promotes_admin_emails(workflow, ids, monkeypatch):
    monkeypatch.setenv("ADMIN_EMAILS", "Chief@Example.com")

    fresh = resolve_actor({"id": "chief", "email": "chief@example.com"}, workflow)
    existing = resolve_actor({"id": ids.author, "email": "chief@example.com"}, workflow)

    assert fresh.role is Role.ADMIN
    assert existing.role is Role.ADMIN
    assert workflow.repository.get_user(ids.author)["role"] == "admin"


def test_resolve_actor_falls_back_to_author_for_unknown_role(workflow):
    workflow.repository.upsert_user({"id": "legacy", "role": "owner"})
    assert resolve_actor({"id": "legacy"}, workflow).role is Role.AUTHOR
