from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    """Base class for service-layer exceptions mapped to HTTP responses.

    Every subclass carries an HTTP ``status_code`` and a stable ``error_code``
    that clients can branch on:
    - duplicate_account (400)
    - invalid_credentials (401)
    - unauthorized (401)
    - forbidden (403)
    - not_found (404)
    - conflict (409)
    """

    status_code: int = 400
    error_code: str = "bad_request"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        detail: Optional[dict] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.detail = detail or {}


class DuplicateAccountError(ServiceError):
    """An account with this email already exists (400)."""
    status_code = 400
    error_code = "duplicate_account"


class InvalidCredentialError(ServiceError):
    """Password missing or not matching (401)."""
    status_code = 401
    error_code = "invalid_credentials"


class AuthenticationError(ServiceError):
    """Authentication failed or missing (401)."""
    status_code = 401
    error_code = "unauthorized"


class ForbiddenError(ServiceError):
    """Authenticated, but the role is not allowed here (403)."""
    status_code = 403
    error_code = "forbidden"


class NotFoundError(ServiceError):
    """Requested resource not found (404)."""
    status_code = 404
    error_code = "not_found"


class AccountConflictError(ServiceError):
    """A new identity collides with an account owned by a different identity (409)."""
    status_code = 409
    error_code = "conflict"


__all__ = [
    "ServiceError",
    "DuplicateAccountError",
    "InvalidCredentialError",
    "AuthenticationError",
    "ForbiddenError",
    "NotFoundError",
    "AccountConflictError",
]
