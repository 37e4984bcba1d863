from __future__ import annotations

import asyncio
import threading
from datetime import timedelta
from typing import Optional
from urllib.parse import urlparse, urlunparse

from storefront.api.access import ROUTE_POLICY
from storefront.config import get_settings, reset_settings_cache
from storefront.logging import get_logger
from storefront.service.auth import AuthService
from storefront.service.guard import AuthorizationGuard
from storefront.service.oauth import OAuthClient, OAuthStateStore
from storefront.service.policy import RolePolicy
from storefront.service.session import SessionTransport
from storefront.service.tokens import TokenIssuer
from storefront.storage.memory import MemoryStore
from storefront.storage.postgres import PostgresStore
from storefront.storage.redis_cache import RedisCache

logger = get_logger(__name__)


def _mask_url_password(url: Optional[str]) -> Optional[str]:
    """Replace the password in a connection URL with ``***`` for logging."""

    if not url:
        return url
    parsed = urlparse(url)
    if not parsed.password:
        return url
    netloc = parsed.hostname or ""
    if parsed.port:
        netloc = f"{netloc}:{parsed.port}"
    netloc = f"{parsed.username or ''}:***@{netloc}"
    return urlunparse(parsed._replace(netloc=netloc))


class Runtime:
    """Holds singleton service instances for the FastAPI app."""

    def __init__(self):
        self.settings = get_settings()
        logger.info(
            "runtime_init_started",
            use_memory_store=self.settings.use_memory_store,
            test_mode=self.settings.test_mode,
        )

        try:
            self.store = (
                MemoryStore()
                if self.settings.use_memory_store
                else PostgresStore(self.settings.database_url)
            )
            logger.info(
                "runtime_store_initialized",
                store_type="memory" if self.settings.use_memory_store else "postgres",
            )
        except Exception as exc:
            logger.error(
                "runtime_store_init_failed",
                store_type="memory" if self.settings.use_memory_store else "postgres",
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise

        self.cache: Optional[RedisCache] = None
        if self.settings.redis_url:
            try:
                cache = RedisCache(self.settings.redis_url)
                cache.verify_connection()
                self.cache = cache
            except Exception as exc:
                if not self.settings.test_mode:
                    raise RuntimeError(
                        "Redis is configured but unreachable; unset REDIS_URL to keep "
                        "OAuth state in process"
                    ) from exc
                logger.warning(
                    "redis_disabled_fallback",
                    redis_url=_mask_url_password(self.settings.redis_url),
                    error=str(exc),
                )

        refresh_ttl = timedelta(minutes=self.settings.refresh_token_ttl_minutes)
        cookie_lifetime = timedelta(days=self.settings.refresh_cookie_days)
        if refresh_ttl != cookie_lifetime:
            logger.warning(
                "refresh_lifetime_mismatch",
                refresh_token_ttl_minutes=self.settings.refresh_token_ttl_minutes,
                refresh_cookie_days=self.settings.refresh_cookie_days,
            )

        self.issuer = TokenIssuer(
            self.settings.jwt_secret,
            access_ttl=timedelta(minutes=self.settings.access_token_ttl_minutes),
            refresh_ttl=refresh_ttl,
        )
        self.session = SessionTransport(self.settings)
        self.guard = AuthorizationGuard(RolePolicy(ROUTE_POLICY), self.issuer)
        self.oauth_client = OAuthClient(self.settings)
        self.oauth_states = OAuthStateStore(
            self.cache, ttl=timedelta(minutes=self.settings.oauth_state_ttl_minutes)
        )
        self.auth = AuthService(
            self.store,
            self.issuer,
            oauth_client=self.oauth_client,
            oauth_states=self.oauth_states,
        )
        logger.info("runtime_init_completed", redis=self.cache is not None)

    async def close(self) -> None:
        if self.cache is not None:
            await self.cache.close()
        if isinstance(self.store, PostgresStore):
            self.store.close()


runtime: Runtime | None = None
_runtime_lock = threading.Lock()


def get_runtime() -> Runtime:
    """Get or create the Runtime singleton (double-checked locking)."""

    global runtime
    if runtime is not None:
        return runtime
    with _runtime_lock:
        if runtime is None:
            runtime = Runtime()
        return runtime


def reset_runtime_for_tests() -> Runtime:
    """Rebuild the runtime singleton from a freshly read environment."""

    global runtime

    with _runtime_lock:
        if runtime is not None and runtime.cache is not None:
            try:
                loop = asyncio.get_running_loop()
                loop.create_task(runtime.cache.close())
            except RuntimeError:
                asyncio.run(runtime.cache.close())

        reset_settings_cache()
        settings = get_settings()
        if not settings.test_mode:
            raise RuntimeError("runtime reset is only allowed in TEST_MODE")
        runtime = Runtime()
        return runtime
