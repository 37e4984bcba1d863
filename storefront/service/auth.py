from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from storefront.logging import get_logger
from storefront.service.errors import AuthenticationError, NotFoundError
from storefront.service.identity import IdentityResolver, UserStore
from storefront.service.oauth import OAuthClient, OAuthStateStore
from storefront.service.tokens import TokenIssuer, TokenPair
from storefront.storage.models import Role, User

MAX_PAGE_SIZE = 24


@dataclass(frozen=True)
class AuthResult:
    user: User
    tokens: TokenPair


class AuthService:
    """Orchestrates identity resolution and token issuance per endpoint.

    Tokens are only minted after the identity has been resolved, and the
    role they carry is the one stored at that moment.
    """

    def __init__(
        self,
        store: UserStore,
        issuer: TokenIssuer,
        *,
        oauth_client: OAuthClient,
        oauth_states: OAuthStateStore,
    ) -> None:
        self.store = store
        self.issuer = issuer
        self.resolver = IdentityResolver(store)
        self.oauth_client = oauth_client
        self.oauth_states = oauth_states
        self.logger = get_logger(__name__)

    def _issue(self, user: User) -> AuthResult:
        return AuthResult(user=user, tokens=self.issuer.issue(user.id, user.role))

    async def register(
        self, email: str, password: str, name: Optional[str] = None
    ) -> AuthResult:
        return self._issue(self.resolver.register(email, password, name))

    async def login(self, email: str, password: str) -> AuthResult:
        return self._issue(self.resolver.login(email, password))

    async def refresh(self, refresh_token: Optional[str]) -> AuthResult:
        if not refresh_token:
            raise AuthenticationError("refresh token missing")
        claims = self.issuer.verify_refresh(refresh_token)
        user = self.store.get_user(claims.id)
        if not user:
            self.logger.warning("refresh_user_missing", user_id=claims.id)
            raise NotFoundError("user not found")
        return self._issue(user)

    async def start_oauth(self, provider_name: str) -> str:
        provider = self.oauth_client.get_provider(provider_name)
        state = await self.oauth_states.issue(provider.name)
        return self.oauth_client.authorization_url(provider, state)

    async def complete_oauth(
        self, provider_name: str, code: Optional[str], state: Optional[str]
    ) -> AuthResult:
        provider = self.oauth_client.get_provider(provider_name)
        if not await self.oauth_states.consume(state, provider.name):
            self.logger.warning("oauth_state_invalid", provider=provider.name)
            raise AuthenticationError("invalid oauth state")
        if not code:
            raise AuthenticationError("authorization code missing")
        profile = await self.oauth_client.exchange(provider, code)
        user = self.resolver.resolve_oauth(profile)
        self.logger.info("oauth_login", provider=provider.name, user_id=user.id)
        return self._issue(user)

    def get_user(self, user_id: str) -> User:
        user = self.store.get_user(user_id)
        if not user:
            raise NotFoundError("user not found")
        return user

    def list_users(self, *, page: int = 1, limit: int = MAX_PAGE_SIZE) -> Tuple[List[User], int]:
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        offset = (max(page, 1) - 1) * limit
        return self.store.list_users(offset=offset, limit=limit), self.store.count_users()

    def set_user_role(self, user_id: str, role: Role) -> User:
        """Persist a new role. Outstanding access tokens keep the old one."""

        user = self.store.update_user_role(user_id, role)
        if not user:
            raise NotFoundError("user not found")
        self.logger.info("user_role_updated", user_id=user_id, new_role=Role(role).value)
        return user


__all__ = ["AuthResult", "AuthService", "MAX_PAGE_SIZE"]
