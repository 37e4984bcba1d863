from __future__ import annotations

import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Protocol, Tuple
from urllib.parse import urlencode

import httpx

from storefront.config import Settings
from storefront.logging import get_logger
from storefront.service.errors import AuthenticationError, NotFoundError
from storefront.service.identity import NormalizedProfile
from storefront.storage.redis_cache import RedisCache

logger = get_logger(__name__)


class OAuthProvider(Protocol):
    """Adapter translating one provider's endpoints and payloads."""

    name: str
    auth_url: str
    token_url: str
    scope: str

    def authorize_params(self) -> Dict[str, str]:
        ...

    async def fetch_userinfo(
        self, client: httpx.AsyncClient, token_result: Dict[str, Any]
    ) -> Dict[str, Any]:
        ...

    def resolve_profile(self, raw: Dict[str, Any]) -> NormalizedProfile:
        ...


def _normalize_email(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return value.strip().lower() or None


class YandexProvider:
    name = "yandex"
    auth_url = "https://oauth.yandex.ru/authorize"
    token_url = "https://oauth.yandex.ru/token"
    userinfo_url = "https://login.yandex.ru/info"
    scope = "login:email login:info login:avatar"

    def authorize_params(self) -> Dict[str, str]:
        return {}

    async def fetch_userinfo(self, client, token_result):
        response = await client.get(
            self.userinfo_url,
            params={"format": "json"},
            headers={"Authorization": f"OAuth {token_result['access_token']}"},
        )
        response.raise_for_status()
        return response.json()

    def resolve_profile(self, raw: Dict[str, Any]) -> NormalizedProfile:
        # Yandex accounts are matched by email only
        emails = raw.get("emails") or []
        email = raw.get("default_email") or (emails[0] if emails else None)
        avatar_id = raw.get("default_avatar_id")
        avatar = None
        if avatar_id and not raw.get("is_avatar_empty"):
            avatar = f"https://avatars.yandex.net/get-yapic/{avatar_id}/islands-200"
        return NormalizedProfile(
            email=_normalize_email(email),
            name=raw.get("login") or raw.get("display_name"),
            avatar=avatar,
        )


class VkProvider:
    name = "vk"
    auth_url = "https://oauth.vk.com/authorize"
    token_url = "https://oauth.vk.com/access_token"
    userinfo_url = "https://api.vk.com/method/users.get"
    scope = ""
    api_version = "5.131"

    def authorize_params(self) -> Dict[str, str]:
        return {"display": "page", "v": self.api_version}

    async def fetch_userinfo(self, client, token_result):
        response = await client.get(
            self.userinfo_url,
            params={
                "user_ids": token_result.get("user_id"),
                "fields": "photo_200",
                "access_token": token_result["access_token"],
                "v": self.api_version,
            },
        )
        response.raise_for_status()
        users = (response.json() or {}).get("response") or []
        if not users:
            raise AuthenticationError("vk returned no profile")
        return users[0]

    def resolve_profile(self, raw: Dict[str, Any]) -> NormalizedProfile:
        vk_id = raw.get("id")
        name = " ".join(
            part for part in (raw.get("first_name"), raw.get("last_name")) if part
        )
        return NormalizedProfile(
            external_id=str(vk_id) if vk_id is not None else None,
            name=name or None,
            avatar=raw.get("photo_200"),
        )


OAUTH_PROVIDERS: Dict[str, OAuthProvider] = {
    provider.name: provider for provider in (YandexProvider(), VkProvider())
}


class OAuthStateStore:
    """Single-use ``state`` values guarding the authorize/callback round trip."""

    def __init__(self, cache: Optional[RedisCache], *, ttl: timedelta) -> None:
        self.cache = cache
        self.ttl = ttl
        self._states: Dict[str, Tuple[str, datetime]] = {}
        self._state_lock = threading.Lock()

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def _cleanup_expired(self, now: datetime) -> None:
        expired = [key for key, (_, exp) in self._states.items() if exp <= now]
        for key in expired:
            self._states.pop(key, None)

    async def issue(self, provider: str) -> str:
        state = uuid.uuid4().hex
        expires_at = self._now() + self.ttl
        if self.cache:
            await self.cache.set_oauth_state(state, provider, expires_at)
        else:
            with self._state_lock:
                self._cleanup_expired(self._now())
                self._states[state] = (provider, expires_at)
        return state

    async def consume(self, state: Optional[str], provider: str) -> bool:
        if not state:
            return False
        if self.cache:
            stored = await self.cache.pop_oauth_state(state)
        else:
            with self._state_lock:
                stored = self._states.pop(state, None)
        if not stored:
            return False
        stored_provider, expires_at = stored
        return stored_provider == provider and expires_at > self._now()


class OAuthClient:
    """Builds authorize URLs and exchanges callback codes for profiles."""

    def __init__(
        self,
        settings: Settings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ) -> None:
        self.settings = settings
        self._transport = transport
        self.timeout = timeout

    def get_provider(self, name: str) -> OAuthProvider:
        provider = OAUTH_PROVIDERS.get(name)
        if provider is None:
            raise NotFoundError(f"unsupported oauth provider: {name}")
        return provider

    def _get_oauth_credentials(self, provider: str) -> Tuple[Optional[str], Optional[str]]:
        client_id = getattr(self.settings, f"oauth_{provider}_client_id", None)
        client_secret = getattr(self.settings, f"oauth_{provider}_client_secret", None)
        return client_id, client_secret

    def authorization_url(self, provider: OAuthProvider, state: str) -> str:
        client_id, _ = self._get_oauth_credentials(provider.name)
        if not client_id:
            logger.warning("oauth_not_configured", provider=provider.name)
            raise NotFoundError(f"oauth provider {provider.name} is not configured")
        params = {
            "client_id": client_id,
            "redirect_uri": self.settings.oauth_callback_url(provider.name),
            "response_type": "code",
            "state": state,
        }
        if provider.scope:
            params["scope"] = provider.scope
        params.update(provider.authorize_params())
        return f"{provider.auth_url}?{urlencode(params)}"

    async def exchange(self, provider: OAuthProvider, code: str) -> NormalizedProfile:
        client_id, client_secret = self._get_oauth_credentials(provider.name)
        if not client_id or not client_secret:
            logger.error("oauth_credentials_missing", provider=provider.name)
            raise AuthenticationError("oauth provider is not configured")
        token_data = {
            "client_id": client_id,
            "client_secret": client_secret,
            "code": code,
            "redirect_uri": self.settings.oauth_callback_url(provider.name),
            "grant_type": "authorization_code",
        }
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, follow_redirects=False, transport=self._transport
            ) as client:
                token_response = await client.post(
                    provider.token_url,
                    data=token_data,
                    headers={"Accept": "application/json"},
                )
                token_response.raise_for_status()
                token_result = token_response.json()
                if not isinstance(token_result, dict) or not token_result.get(
                    "access_token"
                ):
                    logger.error("oauth_no_access_token", provider=provider.name)
                    raise AuthenticationError("oauth code exchange failed")
                userinfo = await provider.fetch_userinfo(client, token_result)
        except httpx.HTTPStatusError as exc:
            logger.error(
                "oauth_exchange_http_error",
                provider=provider.name,
                status_code=exc.response.status_code,
            )
            raise AuthenticationError("oauth code exchange failed") from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("oauth_exchange_error", provider=provider.name, error=str(exc))
            raise AuthenticationError("oauth code exchange failed") from exc
        if not isinstance(userinfo, dict):
            raise AuthenticationError("oauth profile has an unexpected format")
        return provider.resolve_profile(userinfo)


__all__ = [
    "OAuthProvider",
    "YandexProvider",
    "VkProvider",
    "OAUTH_PROVIDERS",
    "OAuthStateStore",
    "OAuthClient",
]
