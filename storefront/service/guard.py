from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from storefront.logging import get_logger
from storefront.service.errors import AuthenticationError, ForbiddenError
from storefront.service.policy import RolePolicy
from storefront.service.tokens import TokenIssuer
from storefront.storage.models import Role

logger = get_logger(__name__)


@dataclass(frozen=True)
class AuthContext:
    user_id: str
    role: Role


def extract_bearer(header: Optional[str]) -> Optional[str]:
    if not header:
        return None
    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class AuthorizationGuard:
    """Per-request public / authenticate / role decision.

    The caller's role comes from the access token claim and is never re-read
    from storage, so a role change takes effect on the next refresh.
    """

    def __init__(self, policy: RolePolicy, issuer: TokenIssuer) -> None:
        self.policy = policy
        self.issuer = issuer

    def authorize(
        self, method: str, route_path: str, authorization: Optional[str]
    ) -> Optional[AuthContext]:
        """Return the caller's context, or ``None`` for a public route.

        Raises ``AuthenticationError`` when a protected route has no valid
        access token and ``ForbiddenError`` when the role is not allowed.
        """

        requirement = self.policy.lookup(method, route_path)
        if requirement.public:
            return None
        token = extract_bearer(authorization)
        if token is None:
            logger.info("guard_denied", reason="missing_token", path=route_path)
            raise AuthenticationError("authentication required")
        claims = self.issuer.verify_access(token)
        if not requirement.allows(claims.role):
            logger.info(
                "guard_denied",
                reason="role",
                path=route_path,
                user_id=claims.id,
                role=claims.role.value,
            )
            raise ForbiddenError("insufficient role")
        return AuthContext(user_id=claims.id, role=claims.role)


__all__ = ["AuthContext", "AuthorizationGuard", "extract_bearer"]
