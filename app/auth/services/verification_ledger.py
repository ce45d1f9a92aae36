from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.auth.core.errors import AuthError
from app.auth.core.timeutil import utcnow
from app.auth.models.user import User
from app.auth.models.verification_token import EmailVerificationToken

logger = logging.getLogger(__name__)


def new_verification_token() -> str:
    return secrets.token_urlsafe(32)


class VerificationLedger:
    """
    Single-use, time-boxed email verification tokens.

    ISSUED rows (used=false) become CONSUMED on a successful verify or
    SUPERSEDED when a newer token is issued for the same user; both set
    used=true. Expiry is only evaluated when a token is consumed.
    """

    def __init__(
        self,
        db: Session,
        ttl: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = db
        self.ttl = ttl
        self._clock = clock

    def _lock_owner(self, user_id: int):
        # FOR UPDATE on the owner serializes concurrent issue_for calls per user
        stmt = (
            select(User)
            .where(User.id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.db.exec(stmt).first()

    def issue_for(self, user_id: int) -> str:
        for attempt in (1, 2):
            user = self._lock_owner(user_id)
            if user is None:
                self.db.rollback()
                raise AuthError("USER_NOT_FOUND", "User not found")
            if user.is_email_verified:
                self.db.rollback()
                raise AuthError("ALREADY_VERIFIED", "Email already verified")

            now = self._clock()
            # supersede every outstanding token before adding the new one
            self.db.connection().execute(
                update(EmailVerificationToken)
                .where(
                    EmailVerificationToken.user_id == user_id,
                    EmailVerificationToken.used == False,  # noqa: E712
                )
                .values(used=True, updated_at=now)
            )
            token = new_verification_token()
            self.db.add(
                EmailVerificationToken(
                    user_id=user_id,
                    token=token,
                    expires_at=now + self.ttl,
                )
            )
            try:
                self.db.commit()
                return token
            except IntegrityError:
                self.db.rollback()
                logger.warning("verification token collision for user=%s (attempt %d)", user_id, attempt)
        raise AuthError("INTERNAL_ERROR", "Internal error")

    def consume(self, token: str) -> User:
        """Mark the token CONSUMED and the owner verified, in one transaction."""
        now = self._clock()
        flipped = self.db.connection().execute(
            update(EmailVerificationToken)
            .where(
                EmailVerificationToken.token == token,
                EmailVerificationToken.used == False,  # noqa: E712
                EmailVerificationToken.expires_at > now,
            )
            .values(used=True, updated_at=now)
        ).rowcount
        if flipped != 1:
            self.db.rollback()
            self._raise_for_unusable(token)

        try:
            row = self.db.exec(
                select(EmailVerificationToken).where(EmailVerificationToken.token == token)
            ).one()
            self.db.connection().execute(
                update(User)
                .where(User.id == row.user_id)
                .values(is_email_verified=True, updated_at=now)
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        user = self.db.get(User, row.user_id)
        self.db.refresh(user)
        logger.info("email verified for user=%s", user.id)
        return user

    def _raise_for_unusable(self, token: str) -> None:
        row = self.db.exec(
            select(EmailVerificationToken).where(EmailVerificationToken.token == token)
        ).first()
        if row is None or row.used:
            raise AuthError("INVALID_TOKEN", "Invalid verification token", status_code=400)
        raise AuthError("TOKEN_EXPIRED", "Verification token expired", status_code=400)
