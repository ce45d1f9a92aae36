from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.auth.core.errors import AuthError
from app.auth.core.timeutil import utcnow
from app.auth.core.tokens import TokenIssuer, TokenPair, new_refresh_jti, sha256_hex
from app.auth.models.refresh_token import RefreshToken
from app.auth.models.user import User

logger = logging.getLogger(__name__)


class RefreshLedger:
    """
    Persisted record of issued refresh tokens.

    Row states: LIVE (revoked=false, not expired), CONSUMED (revoked by
    rotation), LOGGED_OUT (revoked by logout), EXPIRED (revoked=false, past
    expires_at). Only LIVE rows can move, and only to revoked=true.
    """

    def __init__(
        self,
        db: Session,
        issuer: TokenIssuer,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = db
        self.issuer = issuer
        self._clock = clock

    def _stage_record(self, user: User) -> Tuple[RefreshToken, TokenPair]:
        jti = new_refresh_jti()
        access_token = self.issuer.mint_access_token(user)
        refresh_token, exp = self.issuer.mint_refresh_token(user, jti)
        row = RefreshToken(
            jti=jti,
            user_id=user.id,
            token_hash=sha256_hex(refresh_token),
            expires_at=exp,
        )
        self.db.add(row)
        return row, TokenPair(access_token=access_token, refresh_token=refresh_token)

    def issue(self, user: User) -> TokenPair:
        """Mint an access/refresh pair and persist a LIVE record for the refresh token."""
        for attempt in (1, 2):
            _, pair = self._stage_record(user)
            try:
                self.db.commit()
                return pair
            except IntegrityError:
                # jti collision on the unique index; a fresh uuid4 is retried once
                self.db.rollback()
                logger.warning("refresh jti collision for user=%s (attempt %d)", user.id, attempt)
        raise AuthError("INTERNAL_ERROR", "Internal error")

    def _consume(self, jti: str, token_hash: str) -> int:
        """Flip exactly one LIVE row to revoked; returns the affected row count."""
        now = self._clock()
        stmt = (
            update(RefreshToken)
            .where(
                RefreshToken.jti == jti,
                RefreshToken.token_hash == token_hash,
                RefreshToken.revoked == False,  # noqa: E712
                RefreshToken.expires_at > now,
            )
            .values(revoked=True, updated_at=now)
        )
        return self.db.connection().execute(stmt).rowcount

    def rotate(self, refresh_token: str) -> Tuple[User, TokenPair]:
        """
        Exchange a LIVE refresh token for a new pair.

        The find-and-flip is a single conditional UPDATE, so when two requests
        race on the same token exactly one observes rowcount == 1.
        """
        try:
            payload = self.issuer.verify_refresh_token(refresh_token)
        except AuthError as exc:
            if exc.code == "TOKEN_EXPIRED":
                raise AuthError("REFRESH_REVOKED", "Refresh token invalid or revoked")
            raise AuthError("INVALID_REFRESH", "Invalid refresh token")

        jti = payload["jti"]
        try:
            if self._consume(jti, sha256_hex(refresh_token)) != 1:
                self.db.rollback()
                logger.info("refresh rejected jti=%s (revoked, expired or unknown)", jti)
                raise AuthError("REFRESH_REVOKED", "Refresh token invalid or revoked")

            row = self.db.exec(select(RefreshToken).where(RefreshToken.jti == jti)).one()
            user = self.db.get(User, row.user_id)
            if user is None:
                self.db.rollback()
                raise AuthError("REFRESH_REVOKED", "Refresh token invalid or revoked")

            _, pair = self._stage_record(user)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning("refresh rotation failed on insert for jti=%s", jti)
            raise AuthError("INTERNAL_ERROR", "Internal error")

        self.db.refresh(user)
        return user, pair

    def revoke(self, refresh_token: Optional[str]) -> None:
        """Logout. Missing, malformed or already revoked tokens are a no-op."""
        if not refresh_token:
            return
        try:
            payload = self.issuer.verify_refresh_token(refresh_token)
        except AuthError:
            return
        now = self._clock()
        self.db.connection().execute(
            update(RefreshToken)
            .where(
                RefreshToken.jti == payload["jti"],
                RefreshToken.token_hash == sha256_hex(refresh_token),
                RefreshToken.revoked == False,  # noqa: E712
            )
            .values(revoked=True, updated_at=now)
        )
        self.db.commit()

    def revoke_all_for_user(self, user_id: int) -> int:
        now = self._clock()
        result = self.db.connection().execute(
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id, RefreshToken.revoked == False)  # noqa: E712
            .values(revoked=True, updated_at=now)
        )
        self.db.commit()
        return result.rowcount
