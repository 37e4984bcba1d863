#!/usr/bin/env python3
"""Create the first ADMIN account, or promote an existing one.

Roles can otherwise only be changed by an existing admin through the
dashboard, so a fresh deployment needs this once.

Usage:
    ADMIN_EMAIL=admin@example.com ADMIN_PASSWORD=... python scripts/bootstrap_admin.py
    python scripts/bootstrap_admin.py --email admin@example.com --password ...

Environment Variables:
    ADMIN_EMAIL: Email for the admin user
    ADMIN_PASSWORD: Password used when the account has to be created
    DATABASE_URL: PostgreSQL connection string (required)
"""
from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from storefront.service.identity import UserStore  # noqa: E402
from storefront.service.passwords import hash_password  # noqa: E402
from storefront.storage.models import Role  # noqa: E402

MIN_PASSWORD_LENGTH = 12


def bootstrap_admin(
    store: UserStore, email: str, password: str | None, dry_run: bool = False
) -> dict:
    """Ensure ``email`` belongs to an ADMIN.

    Returns:
        dict with user_id, email, and status
        ('created', 'promoted', 'already_admin' or 'dry_run')
    """
    existing_user = store.get_user_by_email(email)

    if existing_user:
        if existing_user.role == Role.ADMIN:
            return {"user_id": existing_user.id, "email": email, "status": "already_admin"}
        if dry_run:
            return {"user_id": existing_user.id, "email": email, "status": "dry_run"}
        store.update_user_role(existing_user.id, Role.ADMIN)
        return {"user_id": existing_user.id, "email": email, "status": "promoted"}

    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(
            f"a password of at least {MIN_PASSWORD_LENGTH} characters is required "
            "to create a new admin"
        )
    if dry_run:
        return {"user_id": None, "email": email, "status": "dry_run"}

    user = store.create_user(
        email,
        password_hash=hash_password(password),
        name=email.split("@")[0],
        role=Role.ADMIN,
    )
    return {"user_id": user.id, "email": email, "status": "created"}


def main():
    parser = argparse.ArgumentParser(
        description="Bootstrap an admin user for the storefront",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--email",
        default=os.environ.get("ADMIN_EMAIL"),
        help="Admin email (or set ADMIN_EMAIL env var)",
    )
    parser.add_argument(
        "--password",
        default=os.environ.get("ADMIN_PASSWORD"),
        help="Admin password (or set ADMIN_PASSWORD env var)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be done without making changes",
    )

    args = parser.parse_args()

    if not args.email:
        print("Error: --email or ADMIN_EMAIL environment variable required")
        sys.exit(1)

    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        print("Error: DATABASE_URL is required; an in-memory admin would not outlive this script")
        sys.exit(1)

    from storefront.storage.postgres import PostgresStore

    store = PostgresStore(database_url, min_size=1, max_size=1)
    try:
        result = bootstrap_admin(store, args.email.strip().lower(), args.password, args.dry_run)
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        store.close()

    status = result["status"]
    if status == "created":
        print(f"Created admin user: {result['email']} (id: {result['user_id']})")
    elif status == "promoted":
        print(f"Promoted existing user {result['email']} to admin (id: {result['user_id']})")
    elif status == "already_admin":
        print("No changes needed - user is already an admin.")
    else:
        print(f"[DRY RUN] No changes made for {result['email']}")


if __name__ == "__main__":
    main()
