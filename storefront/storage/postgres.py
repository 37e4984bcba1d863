from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

from psycopg import errors
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from storefront.logging import get_logger
from storefront.storage.errors import ConstraintViolation
from storefront.storage.models import DEFAULT_AVATAR, Role, User

_SCHEMA = """
CREATE TABLE IF NOT EXISTS app_user (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    email TEXT,
    password_hash TEXT,
    external_id TEXT,
    role TEXT NOT NULL DEFAULT 'USER',
    name TEXT,
    avatar TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    CONSTRAINT app_user_email_key UNIQUE (email),
    CONSTRAINT app_user_external_id_key UNIQUE (external_id),
    CONSTRAINT app_user_role_check CHECK (role IN ('USER', 'EMPLOYEES', 'ADMIN'))
)
"""

# constraint name -> offending field, for ConstraintViolation.detail
_UNIQUE_CONSTRAINTS = {
    "app_user_email_key": "email",
    "app_user_external_id_key": "external_id",
}


class PostgresStore:
    """Postgres-backed user repository."""

    def __init__(self, dsn: str, *, min_size: int = 2, max_size: int = 10) -> None:
        self.dsn = dsn
        self.logger = get_logger(__name__)
        self.pool = ConnectionPool(
            self.dsn,
            min_size=min_size,
            max_size=max_size,
            kwargs={"row_factory": dict_row, "autocommit": False},
        )
        self._ensure_schema()

    def _connect(self):
        return self.pool.connection()

    def _ensure_schema(self) -> None:
        """Create the ``app_user`` table if it is missing."""

        with self._connect() as conn:
            conn.execute(_SCHEMA)

    def close(self) -> None:
        self.pool.close()

    @staticmethod
    def _row_to_user(row: Mapping[str, Any]) -> User:
        now = datetime.now(timezone.utc)
        return User(
            id=str(row["id"]),
            email=row.get("email"),
            password_hash=row.get("password_hash"),
            external_id=row.get("external_id"),
            role=Role(row.get("role") or Role.USER.value),
            name=row.get("name"),
            avatar=row.get("avatar"),
            created_at=row.get("created_at") or now,
            updated_at=row.get("updated_at") or now,
        )

    @staticmethod
    def _violation_from(exc: errors.UniqueViolation) -> ConstraintViolation:
        constraint = getattr(getattr(exc, "diag", None), "constraint_name", None)
        field = _UNIQUE_CONSTRAINTS.get(constraint or "")
        if field == "external_id":
            return ConstraintViolation("external id already linked", {"field": field})
        return ConstraintViolation(
            "email already exists", {"field": field or "email"}
        )

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
        try:
            with self._connect() as conn:
                row = conn.execute(
                    """
                    INSERT INTO app_user (email, password_hash, external_id, role, name, avatar)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    RETURNING *
                    """,
                    (email, password_hash, external_id, Role(role).value, name, avatar),
                ).fetchone()
        except errors.UniqueViolation as exc:
            raise self._violation_from(exc) from exc
        return self._row_to_user(row)

    def get_user(self, user_id: str) -> Optional[User]:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT * FROM app_user WHERE id = %s", (user_id,)
                ).fetchone()
        except errors.InvalidTextRepresentation:
            # not a UUID, so it cannot name a user
            return None
        return self._row_to_user(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM app_user WHERE email = %s", (email,)
            ).fetchone()
        return self._row_to_user(row) if row else None

    def get_user_by_external_id(self, external_id: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM app_user WHERE external_id = %s", (external_id,)
            ).fetchone()
        return self._row_to_user(row) if row else None

    def update_user_role(self, user_id: str, role: Role) -> Optional[User]:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "UPDATE app_user SET role = %s, updated_at = now() WHERE id = %s RETURNING *",
                    (Role(role).value, user_id),
                ).fetchone()
        except errors.InvalidTextRepresentation:
            return None
        return self._row_to_user(row) if row else None

    def list_users(self, *, offset: int = 0, limit: int = 24) -> List[User]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM app_user ORDER BY created_at DESC LIMIT %s OFFSET %s",
                (limit, offset),
            ).fetchall()
        return [self._row_to_user(row) for row in rows]

    def count_users(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT count(*) AS total FROM app_user").fetchone()
        return int(row["total"]) if row else 0
