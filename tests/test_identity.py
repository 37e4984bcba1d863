"""Unit tests for identity resolution: register, login and OAuth find-or-create."""

import pytest

from storefront.service.errors import (
    AccountConflictError,
    AuthenticationError,
    DuplicateAccountError,
    InvalidCredentialError,
    NotFoundError,
)
from storefront.service.identity import IdentityResolver, NormalizedProfile
from storefront.service.oauth import YandexProvider
from storefront.storage.errors import ConstraintViolation
from storefront.storage.memory import MemoryStore
from storefront.storage.models import DEFAULT_AVATAR, Role


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def resolver(memory_store):
    return IdentityResolver(memory_store)


class RacingStore(MemoryStore):
    """Simulates a concurrent callback that commits between lookup and create.

    The first external-id lookup misses; ``create_user`` then finds the row
    the other request inserted and raises the uniqueness violation.
    """

    def __init__(self, winner_external_id=None, winner_email=None):
        super().__init__()
        self._winner = dict(external_id=winner_external_id, email=winner_email)
        self.lookups = 0

    def get_user_by_external_id(self, external_id):
        self.lookups += 1
        if self.lookups == 1:
            return None
        return super().get_user_by_external_id(external_id)

    def create_user(self, email=None, **kwargs):
        if self._winner is not None:
            winner, self._winner = self._winner, None
            super().create_user(winner["email"], external_id=winner["external_id"])
        return super().create_user(email, **kwargs)


class TestRegister:
    def test_register_creates_user_with_defaults(self, resolver):
        user = resolver.register("a@x.com", "secret1")
        assert user.id
        assert user.role == Role.USER
        assert user.avatar == DEFAULT_AVATAR
        assert user.name == "a"
        assert user.password_hash and user.password_hash != "secret1"

    def test_register_uses_given_name(self, resolver):
        assert resolver.register("a@x.com", "secret1", name="Alice").name == "Alice"

    def test_register_twice_is_duplicate(self, resolver, memory_store):
        resolver.register("a@x.com", "secret1")
        with pytest.raises(DuplicateAccountError):
            resolver.register("a@x.com", "other-password")
        assert memory_store.count_users() == 1

    def test_register_lost_race_is_duplicate(self):
        class LateDuplicateStore(MemoryStore):
            def get_user_by_email(self, email):
                return None

        store = LateDuplicateStore()
        store.create_user("a@x.com")
        with pytest.raises(DuplicateAccountError):
            IdentityResolver(store).register("a@x.com", "secret1")


class TestLogin:
    def test_login_returns_registered_user(self, resolver):
        created = resolver.register("a@x.com", "secret1")
        assert resolver.login("a@x.com", "secret1").id == created.id

    def test_unknown_email_is_not_found(self, resolver):
        with pytest.raises(NotFoundError):
            resolver.login("nobody@x.com", "secret1")

    def test_wrong_password_is_invalid_credential(self, resolver):
        resolver.register("a@x.com", "secret1")
        with pytest.raises(InvalidCredentialError):
            resolver.login("a@x.com", "secret2")

    def test_account_without_password_cannot_login(self, resolver, memory_store):
        memory_store.create_user("oauth@x.com")
        with pytest.raises(InvalidCredentialError):
            resolver.login("oauth@x.com", "anything")


class TestResolveOAuth:
    def test_same_external_id_resolves_to_same_user(self, resolver, memory_store):
        profile = NormalizedProfile(external_id="42", name="Ivan", avatar="https://vk/p.jpg")
        first = resolver.resolve_oauth(profile)
        second = resolver.resolve_oauth(profile)
        assert first.id == second.id
        assert memory_store.count_users() == 1
        assert first.external_id == "42"
        assert first.password_hash is None

    def test_email_profile_links_to_existing_account(self, resolver):
        local = resolver.register("a@x.com", "secret1")
        resolved = resolver.resolve_oauth(NormalizedProfile(email="a@x.com", name="a"))
        assert resolved.id == local.id

    def test_mixed_case_yandex_email_links_to_local_account(self, resolver, memory_store):
        local = resolver.register("a@x.com", "secret1")
        profile = YandexProvider().resolve_profile({"login": "a", "default_email": "A@X.com"})
        assert resolver.resolve_oauth(profile).id == local.id
        assert memory_store.count_users() == 1

    def test_missing_avatar_uses_placeholder(self, resolver):
        user = resolver.resolve_oauth(NormalizedProfile(email="y@yandex.ru"))
        assert user.avatar == DEFAULT_AVATAR

    def test_profile_without_identity_rejected(self, resolver):
        with pytest.raises(AuthenticationError):
            resolver.resolve_oauth(NormalizedProfile(name="nobody"))

    def test_race_resolves_to_winning_user(self):
        store = RacingStore(winner_external_id="42")
        user = IdentityResolver(store).resolve_oauth(NormalizedProfile(external_id="42"))
        assert user.external_id == "42"
        assert store.count_users() == 1
        assert store.lookups == 2

    def test_conflicting_identity_is_not_merged(self):
        """The violating row belongs to a different identity."""
        store = RacingStore(winner_external_id="7", winner_email="shared@x.com")
        profile = NormalizedProfile(external_id="42", email="shared@x.com")
        with pytest.raises(AccountConflictError) as excinfo:
            IdentityResolver(store).resolve_oauth(profile)
        assert excinfo.value.status_code == 409
        assert excinfo.value.detail == {"field": "email"}
        assert store.get_user_by_external_id("42") is None
        assert store.count_users() == 1

    def test_retry_happens_only_once(self):
        class AlwaysViolatingStore(MemoryStore):
            def __init__(self):
                super().__init__()
                self.creates = 0

            def create_user(self, email=None, **kwargs):
                self.creates += 1
                raise ConstraintViolation("external id already linked", {"field": "external_id"})

        store = AlwaysViolatingStore()
        with pytest.raises(AccountConflictError):
            IdentityResolver(store).resolve_oauth(NormalizedProfile(external_id="42"))
        assert store.creates == 1
