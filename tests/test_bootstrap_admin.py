import pytest

from scripts.bootstrap_admin import bootstrap_admin
from storefront.service.passwords import verify_password
from storefront.storage.memory import MemoryStore
from storefront.storage.models import Role


def test_creates_admin():
    store = MemoryStore()
    result = bootstrap_admin(store, "root@x.com", "a-long-admin-password")
    assert result["status"] == "created"
    user = store.get_user(result["user_id"])
    assert user.role == Role.ADMIN
    assert verify_password(user.password_hash, "a-long-admin-password")


def test_promotes_existing_user():
    store = MemoryStore()
    existing = store.create_user("root@x.com")
    result = bootstrap_admin(store, "root@x.com", None)
    assert result == {"user_id": existing.id, "email": "root@x.com", "status": "promoted"}
    assert store.get_user(existing.id).role == Role.ADMIN


def test_existing_admin_untouched():
    store = MemoryStore()
    store.create_user("root@x.com", role=Role.ADMIN)
    assert bootstrap_admin(store, "root@x.com", None)["status"] == "already_admin"


def test_dry_run_changes_nothing():
    store = MemoryStore()
    existing = store.create_user("root@x.com")
    assert bootstrap_admin(store, "root@x.com", None, dry_run=True)["status"] == "dry_run"
    assert store.get_user(existing.id).role == Role.USER


def test_short_password_rejected_for_new_admin():
    with pytest.raises(ValueError):
        bootstrap_admin(MemoryStore(), "root@x.com", "short")
