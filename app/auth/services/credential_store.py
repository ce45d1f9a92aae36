from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.auth.core.errors import AuthError
from app.auth.core.logging_config import redact_email
from app.auth.core.security import hash_password, verify_password
from app.auth.models.user import Role, User

logger = logging.getLogger(__name__)

# verified against when the email is unknown, so both failure paths cost one hash
_DUMMY_HASH = hash_password("not-a-real-password")


def normalize_email(email: str) -> str:
    """Single normalization applied on every write and every lookup."""
    return (email or "").strip().lower()


class CredentialStore:
    """Password-backed identities."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def find_by_email(self, email: str) -> Optional[User]:
        return self.db.exec(select(User).where(User.email == normalize_email(email))).first()

    def get_identity(self, user_id: int) -> Optional[User]:
        return self.db.get(User, user_id)

    def create_identity(self, email: str, password: str) -> User:
        email = normalize_email(email)
        if self.find_by_email(email) is not None:
            raise AuthError("EMAIL_TAKEN", "Email already registered")

        user = User(email=email, password_hash=hash_password(password), role=Role.user.value)
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            # lost a race with a concurrent registration of the same email
            self.db.rollback()
            raise AuthError("EMAIL_TAKEN", "Email already registered")
        self.db.refresh(user)
        logger.info("user created id=%s email=%s", user.id, redact_email(email))
        return user

    def verify_credentials(self, email: str, password: str) -> User:
        user = self.find_by_email(email)
        if user is None:
            verify_password(password, _DUMMY_HASH)
            raise AuthError("INVALID_CREDENTIALS", "Invalid credentials")
        if not verify_password(password, user.password_hash):
            raise AuthError("INVALID_CREDENTIALS", "Invalid credentials")
        return user

    def set_role(self, email: str, role: str) -> User:
        if role not in {r.value for r in Role}:
            raise ValueError(f"unknown role: {role}")
        user = self.find_by_email(email)
        if user is None:
            raise AuthError("USER_NOT_FOUND", "User not found")
        user.role = role
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user
