"""Tests for the in-process user repository."""

import threading
from datetime import timedelta

import pytest

from storefront.storage.errors import ConstraintViolation
from storefront.storage.memory import MemoryStore
from storefront.storage.models import DEFAULT_AVATAR, Role


@pytest.fixture
def store():
    return MemoryStore()


class TestCreateUser:
    def test_defaults(self, store):
        user = store.create_user("a@x.com")
        assert user.role == Role.USER
        assert user.avatar == DEFAULT_AVATAR
        assert not user.has_password
        assert store.get_user(user.id) is user

    def test_duplicate_email_violates(self, store):
        store.create_user("a@x.com")
        with pytest.raises(ConstraintViolation) as excinfo:
            store.create_user("a@x.com")
        assert excinfo.value.field == "email"

    def test_duplicate_external_id_violates(self, store):
        store.create_user(external_id="42")
        with pytest.raises(ConstraintViolation) as excinfo:
            store.create_user(external_id="42")
        assert excinfo.value.field == "external_id"

    def test_accounts_without_email_do_not_collide(self, store):
        store.create_user(external_id="1")
        store.create_user(external_id="2")
        assert store.count_users() == 2

    def test_concurrent_creates_admit_one_winner(self, store):
        results = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            try:
                results.append(store.create_user(external_id="42"))
            except ConstraintViolation:
                results.append(None)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert len([r for r in results if r is not None]) == 1
        assert store.count_users() == 1


class TestLookups:
    def test_lookup_by_email_and_external_id(self, store):
        by_email = store.create_user("a@x.com")
        by_vk = store.create_user(external_id="42")
        assert store.get_user_by_email("a@x.com") is by_email
        assert store.get_user_by_external_id("42") is by_vk
        assert store.get_user_by_email("b@x.com") is None
        assert store.get_user("missing") is None


class TestRolesAndListing:
    def test_update_role(self, store):
        user = store.create_user("a@x.com")
        before = user.updated_at
        updated = store.update_user_role(user.id, Role.ADMIN)
        assert updated.role == Role.ADMIN
        assert updated.updated_at >= before

    def test_update_role_missing_user(self, store):
        assert store.update_user_role("missing", Role.ADMIN) is None

    def test_list_users_newest_first(self, store):
        users = [store.create_user(f"u{i}@x.com") for i in range(3)]
        for offset, user in enumerate(users):
            user.created_at = user.created_at + timedelta(seconds=offset)
        listed = store.list_users(offset=0, limit=2)
        assert [u.email for u in listed] == ["u2@x.com", "u1@x.com"]
        assert [u.email for u in store.list_users(offset=2, limit=2)] == ["u0@x.com"]
        assert store.count_users() == 3
