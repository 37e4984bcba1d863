from __future__ import annotations

import threading
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from storefront.logging import get_logger
from storefront.storage.errors import ConstraintViolation
from storefront.storage.models import DEFAULT_AVATAR, Role, User


class MemoryStore:
    """In-process user repository with the same uniqueness rules as Postgres."""

    def __init__(self) -> None:
        self.logger = get_logger(__name__)
        self.users: Dict[str, User] = {}
        # RLock so nested lookups inside create_user don't deadlock
        self._data_lock = threading.RLock()

    def create_user(
        self,
        email: Optional[str] = None,
        *,
        password_hash: Optional[str] = None,
        external_id: Optional[str] = None,
        name: Optional[str] = None,
        avatar: Optional[str] = DEFAULT_AVATAR,
        role: Role = Role.USER,
    ) -> User:
        with self._data_lock:
            if email is not None and self._find_by_email(email):
                raise ConstraintViolation("email already exists", {"field": "email"})
            if external_id is not None and self._find_by_external_id(external_id):
                raise ConstraintViolation(
                    "external id already linked", {"field": "external_id"}
                )
            user = User(
                id=str(uuid.uuid4()),
                email=email,
                password_hash=password_hash,
                external_id=external_id,
                role=Role(role),
                name=name,
                avatar=avatar,
            )
            self.users[user.id] = user
            return user

    def _find_by_email(self, email: str) -> Optional[User]:
        return next((u for u in self.users.values() if u.email == email), None)

    def _find_by_external_id(self, external_id: str) -> Optional[User]:
        return next(
            (u for u in self.users.values() if u.external_id == external_id), None
        )

    def get_user(self, user_id: str) -> Optional[User]:
        with self._data_lock:
            return self.users.get(user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._data_lock:
            return self._find_by_email(email)

    def get_user_by_external_id(self, external_id: str) -> Optional[User]:
        with self._data_lock:
            return self._find_by_external_id(external_id)

    def update_user_role(self, user_id: str, role: Role) -> Optional[User]:
        with self._data_lock:
            user = self.users.get(user_id)
            if not user:
                return None
            user.role = Role(role)
            user.updated_at = datetime.now(timezone.utc)
            return user

    def list_users(self, *, offset: int = 0, limit: int = 24) -> List[User]:
        with self._data_lock:
            ordered = sorted(self.users.values(), key=lambda u: u.created_at, reverse=True)
            return ordered[offset : offset + limit]

    def count_users(self) -> int:
        with self._data_lock:
            return len(self.users)
