#!/usr/bin/env python3
"""Promote an existing user to the admin role.

Usage:
    python scripts/create_admin.py user@example.com
    python scripts/create_admin.py user@example.com --yes      # skip the prompt
    python scripts/create_admin.py user@example.com --dry-run

The user must already exist (register through the API first).
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def promote(session_factory, email: str, *, dry_run: bool = False, confirm=None) -> str:
    """Returns 'promoted', 'already_admin', 'dry_run', 'cancelled' or 'not_found'."""
    from app.auth.core.errors import AuthError
    from app.auth.models.user import Role
    from app.auth.services.credential_store import CredentialStore

    with session_factory() as db:
        store = CredentialStore(db)
        user = store.find_by_email(email)
        if user is None:
            print(f"No user found with email {email}")
            return "not_found"

        print(f"Found user id={user.id} email={user.email} role={user.role} "
              f"verified={user.is_email_verified}")
        if user.role == Role.admin.value:
            print("User is already an admin")
            return "already_admin"
        if dry_run:
            print(f"[DRY RUN] Would promote {email} to admin")
            return "dry_run"
        if confirm is not None and not confirm():
            print("Cancelled")
            return "cancelled"

        try:
            store.set_role(email, Role.admin.value)
        except AuthError as exc:
            print(f"Failed: {exc.message}")
            return "not_found"
        print(f"Promoted {email} to admin")
        return "promoted"


def _ask() -> bool:
    answer = input("Promote this user to admin? (yes/no): ").strip().lower()
    return answer in ("y", "yes", "si", "sí")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Promote an existing user to admin")
    parser.add_argument("email", help="Email of the user to promote")
    parser.add_argument("--yes", action="store_true", help="Do not ask for confirmation")
    parser.add_argument("--dry-run", action="store_true", help="Show what would change")
    args = parser.parse_args(argv)

    if "@" not in args.email:
        parser.error("a valid email is required")

    from dotenv import load_dotenv

    load_dotenv(".env.local")
    load_dotenv()

    from app.db.session import session_scope

    status = promote(
        session_scope,
        args.email,
        dry_run=args.dry_run,
        confirm=None if args.yes else _ask,
    )
    return 1 if status == "not_found" else 0


if __name__ == "__main__":
    sys.exit(main())
