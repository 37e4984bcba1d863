from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

from starlette.responses import Response

from storefront.config import Settings

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionTransport:
    """Carries the refresh token to the browser in an http-only cookie.

    Detaching only overwrites the browser's copy; a token captured elsewhere
    stays valid until it expires.
    """

    def __init__(self, settings: Settings, *, now: Callable[[], datetime] = _utcnow):
        self.cookie_name = settings.refresh_token_cookie_name
        self.domain = settings.server_domain
        self.lifetime = timedelta(days=settings.refresh_cookie_days)
        self.samesite = "lax" if settings.is_production else "none"
        self._now = now

    def _set(self, response: Response, value: str, expires: datetime) -> None:
        response.set_cookie(
            self.cookie_name,
            value,
            expires=expires,
            path="/",
            domain=self.domain,
            secure=True,
            httponly=True,
            samesite=self.samesite,
        )

    def attach(self, response: Response, refresh_token: str) -> None:
        self._set(response, refresh_token, self._now() + self.lifetime)

    def detach(self, response: Response) -> None:
        self._set(response, "", _EPOCH)


__all__ = ["SessionTransport"]
