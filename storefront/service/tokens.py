from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Optional

from storefront.logging import get_logger
from storefront.service.errors import AuthenticationError
from storefront.storage.models import Role

logger = get_logger(__name__)

ACCESS = "access"
REFRESH = "refresh"


@dataclass(frozen=True)
class Claims:
    id: str
    role: Role
    iat: int
    exp: int
    jti: str
    token_type: str


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


def _encode_segment(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")


def _decode_segment(segment: str) -> bytes:
    padding = "=" * ((4 - len(segment) % 4) % 4)
    return base64.urlsafe_b64decode(segment + padding)


class TokenIssuer:
    """Mints and verifies HS256 access/refresh tokens.

    Tokens carry ``{id, role, iat, exp, jti, token_type}``. Nothing is stored
    server side: a token is valid until it expires, even after a newer pair was
    issued for the same user. ``clock`` returns epoch seconds and exists so
    expiry can be tested deterministically.
    """

    def __init__(
        self,
        secret: str,
        *,
        access_ttl: timedelta,
        refresh_ttl: timedelta,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("token secret must not be empty")
        self._secret = secret.encode()
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self._clock = clock

    def _sign(self, signing_input: str) -> str:
        return _encode_segment(
            hmac.new(self._secret, signing_input.encode(), hashlib.sha256).digest()
        )

    def _encode(self, payload: dict[str, Any]) -> str:
        header = {"alg": "HS256", "typ": "JWT"}
        header_enc = _encode_segment(json.dumps(header, separators=(",", ":")).encode())
        payload_enc = _encode_segment(
            json.dumps(payload, separators=(",", ":")).encode()
        )
        signing_input = f"{header_enc}.{payload_enc}"
        return f"{signing_input}.{self._sign(signing_input)}"

    def _mint(self, user_id: str, role: Role, token_type: str, ttl: timedelta) -> str:
        now = int(self._clock())
        return self._encode(
            {
                "id": user_id,
                "role": Role(role).value,
                "iat": now,
                "exp": now + int(ttl.total_seconds()),
                "jti": uuid.uuid4().hex,
                "token_type": token_type,
            }
        )

    def issue(self, user_id: str, role: Role) -> TokenPair:
        return TokenPair(
            access_token=self._mint(user_id, role, ACCESS, self.access_ttl),
            refresh_token=self._mint(user_id, role, REFRESH, self.refresh_ttl),
        )

    def _decode(self, token: Optional[str]) -> Optional[dict[str, Any]]:
        if not token or not isinstance(token, str):
            return None
        try:
            header_b64, payload_b64, sig_b64 = token.split(".")
        except ValueError:
            return None
        try:
            header = json.loads(_decode_segment(header_b64))
        except (ValueError, TypeError):
            return None
        if not isinstance(header, dict) or header.get("alg") != "HS256":
            logger.warning("jwt_invalid_algorithm")
            return None
        if not sig_b64.isascii():
            return None
        if not hmac.compare_digest(self._sign(f"{header_b64}.{payload_b64}"), sig_b64):
            return None
        try:
            payload = json.loads(_decode_segment(payload_b64))
        except (ValueError, TypeError) as exc:
            logger.warning("jwt_payload_decode_failed", error=str(exc))
            return None
        return payload if isinstance(payload, dict) else None

    def _verify(self, token: Optional[str], expected_type: str) -> Claims:
        payload = self._decode(token)
        if payload is None:
            raise AuthenticationError("invalid token")
        if payload.get("token_type") != expected_type:
            raise AuthenticationError("invalid token")
        try:
            claims = Claims(
                id=str(payload["id"]),
                role=Role(payload["role"]),
                iat=int(payload["iat"]),
                exp=int(payload["exp"]),
                jti=str(payload.get("jti", "")),
                token_type=expected_type,
            )
        except (KeyError, TypeError, ValueError):
            raise AuthenticationError("invalid token")
        if claims.exp <= self._clock():
            raise AuthenticationError("token expired")
        return claims

    def verify_access(self, token: Optional[str]) -> Claims:
        return self._verify(token, ACCESS)

    def verify_refresh(self, token: Optional[str]) -> Claims:
        return self._verify(token, REFRESH)


__all__ = ["Claims", "TokenPair", "TokenIssuer", "ACCESS", "REFRESH"]
