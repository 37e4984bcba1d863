from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Protocol

from storefront.logging import get_logger
from storefront.service.errors import (
    AccountConflictError,
    AuthenticationError,
    DuplicateAccountError,
    InvalidCredentialError,
    NotFoundError,
)
from storefront.service.passwords import hash_password, verify_password
from storefront.storage.errors import ConstraintViolation
from storefront.storage.models import DEFAULT_AVATAR, Role, User


class UserStore(Protocol):
    def create_user(
        self,
        email: Optional[str] = None,
        *,
        password_hash: Optional[str] = None,
        external_id: Optional[str] = None,
        name: Optional[str] = None,
        avatar: Optional[str] = DEFAULT_AVATAR,
        role: Role = Role.USER,
    ) -> User: ...

    def get_user(self, user_id: str) -> Optional[User]: ...

    def get_user_by_email(self, email: str) -> Optional[User]: ...

    def get_user_by_external_id(self, external_id: str) -> Optional[User]: ...

    def update_user_role(self, user_id: str, role: Role) -> Optional[User]: ...

    def list_users(self, *, offset: int = 0, limit: int = 24) -> List[User]: ...

    def count_users(self) -> int: ...


@dataclass(frozen=True)
class NormalizedProfile:
    """Provider-independent view of a third-party identity."""

    external_id: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None
    avatar: Optional[str] = None


class IdentityResolver:
    """Turns credentials or a provider profile into exactly one ``User``."""

    def __init__(self, store: UserStore) -> None:
        self.store = store
        self.logger = get_logger(__name__)

    def register(self, email: str, password: str, name: Optional[str] = None) -> User:
        if self.store.get_user_by_email(email):
            self.logger.warning("register_duplicate_email")
            raise DuplicateAccountError("user already registered")
        try:
            user = self.store.create_user(
                email,
                password_hash=hash_password(password),
                name=name or email.split("@")[0],
                avatar=DEFAULT_AVATAR,
                role=Role.USER,
            )
        except ConstraintViolation as exc:
            # lost a race against a concurrent registration
            raise DuplicateAccountError(
                "user already registered", detail={"field": exc.field}
            ) from exc
        self.logger.info("user_registered", user_id=user.id)
        return user

    def login(self, email: str, password: str) -> User:
        user = self.store.get_user_by_email(email)
        if not user:
            self.logger.warning("login_unknown_email")
            raise NotFoundError("user not found")
        if not verify_password(user.password_hash, password):
            self.logger.warning("login_failed", user_id=user.id)
            raise InvalidCredentialError("invalid password")
        self.logger.info("login_succeeded", user_id=user.id)
        return user

    def _lookup(self, profile: NormalizedProfile) -> Optional[User]:
        if profile.external_id:
            return self.store.get_user_by_external_id(profile.external_id)
        return self.store.get_user_by_email(profile.email)

    def resolve_oauth(self, profile: NormalizedProfile) -> User:
        """Find or create the user behind ``profile``.

        Lookup is by external id when the provider supplies one, else by email.
        If the create loses a uniqueness race the lookup is retried once; a
        second miss means the colliding row belongs to another identity and is
        reported as a conflict rather than merged.
        """

        if not profile.external_id and not profile.email:
            raise AuthenticationError("provider profile has no usable identity")
        user = self._lookup(profile)
        if user:
            return user
        try:
            user = self.store.create_user(
                profile.email,
                external_id=profile.external_id,
                name=profile.name,
                avatar=profile.avatar or DEFAULT_AVATAR,
            )
        except ConstraintViolation as exc:
            self.logger.info("oauth_create_race", field=exc.field)
            user = self._lookup(profile)
            if user:
                return user
            self.logger.warning("oauth_account_conflict", field=exc.field)
            raise AccountConflictError(
                "an account with this identity already exists",
                detail={"field": exc.field},
            ) from exc
        self.logger.info("oauth_user_created", user_id=user.id)
        return user


__all__ = ["UserStore", "NormalizedProfile", "IdentityResolver"]
