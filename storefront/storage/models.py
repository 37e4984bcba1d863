from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """Coarse authorization tiers embedded in tokens."""

    USER = "USER"
    EMPLOYEES = "EMPLOYEES"
    ADMIN = "ADMIN"


DEFAULT_AVATAR = "/uploads/noavatar.png"


@dataclass
class User:
    id: str
    email: Optional[str] = None
    password_hash: Optional[str] = None
    external_id: Optional[str] = None
    role: Role = Role.USER
    name: Optional[str] = None
    avatar: Optional[str] = DEFAULT_AVATAR
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash)
