from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from app.auth.core.config import Settings
from app.auth.core.errors import AuthError
from app.auth.core.logging_config import redact_email
from app.auth.core.timeutil import utcnow
from app.auth.core.tokens import TokenIssuer, TokenPair
from app.auth.models.refresh_token import RefreshToken
from app.auth.models.user import Role, User
from app.auth.services.credential_store import CredentialStore
from app.auth.services.email_domain import email_domain_exists
from app.auth.services.email_service import EmailService
from app.auth.services.provider_client import ProviderStatusClient
from app.auth.services.refresh_ledger import RefreshLedger
from app.auth.services.verification_ledger import VerificationLedger

logger = logging.getLogger(__name__)


def serialize_user(user: User, is_provider: bool = False) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "role": user.role,
        "isEmailVerified": user.is_email_verified,
        "isProvider": is_provider,
    }


def _auth_result(user: User, pair: TokenPair, is_provider: bool = False) -> Dict[str, Any]:
    return {
        "user": serialize_user(user, is_provider),
        "accessToken": pair.access_token,
        "refreshToken": pair.refresh_token,
    }


class AuthService:
    """
    Coordinates the credential store and both ledgers into the request-level
    operations. All failures surface as AuthError; only logout and the two
    advisory lookups (provider status, email domain) swallow errors.
    """

    def __init__(
        self,
        db: Session,
        issuer: TokenIssuer,
        settings: Settings,
        provider_client: Optional[ProviderStatusClient] = None,
        domain_checker: Callable[[str, float], bool] = email_domain_exists,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = db
        self.issuer = issuer
        self.settings = settings
        self.credentials = CredentialStore(db)
        self.refresh_ledger = RefreshLedger(db, issuer, clock=clock)
        self.verification_ledger = VerificationLedger(
            db, ttl=settings.verification_ttl, clock=clock
        )
        self.provider_client = provider_client or ProviderStatusClient(None)
        self.domain_checker = domain_checker

    def _is_provider(self, user: User) -> bool:
        try:
            return self.provider_client.is_provider(user.id)
        except Exception:
            logger.exception("provider lookup crashed for user=%s", user.id)
            return False

    # ---- register / login ----
    def register(self, email: str, password: str) -> Dict[str, Any]:
        if self.settings.check_email_domain and not self.domain_checker(
            email, self.settings.dns_timeout
        ):
            raise AuthError("INVALID_EMAIL_DOMAIN", "Email domain does not exist")

        user = self.credentials.create_identity(email, password)
        pair = self.refresh_ledger.issue(user)
        logger.info("registered user=%s", user.id)
        return _auth_result(user, pair)

    def login(self, email: str, password: str) -> Dict[str, Any]:
        user = self.credentials.verify_credentials(email, password)
        pair = self.refresh_ledger.issue(user)
        return _auth_result(user, pair, self._is_provider(user))

    # ---- refresh / logout ----
    def refresh(self, refresh_token: Optional[str]) -> Dict[str, Any]:
        if not refresh_token:
            raise AuthError("MISSING_REFRESH", "Refresh token required")
        user, pair = self.refresh_ledger.rotate(refresh_token)
        return _auth_result(user, pair, self._is_provider(user))

    def logout(self, refresh_token: Optional[str]) -> Dict[str, Any]:
        self.refresh_ledger.revoke(refresh_token)
        return {"ok": True}

    # ---- access tokens ----
    def authenticate(self, access_token: Optional[str]) -> Dict[str, Any]:
        if not access_token:
            raise AuthError("MISSING_TOKEN", "Token required")
        try:
            claims = self.issuer.verify_access_token(access_token)
        except AuthError as exc:
            message = "Token expired" if exc.code == "TOKEN_EXPIRED" else "Invalid token"
            raise AuthError("INVALID_TOKEN", message)
        return {"userId": int(claims["sub"]), "role": claims.get("role", Role.user.value)}

    # ---- email verification ----
    def send_verification(self, user_id: int) -> str:
        return self.verification_ledger.issue_for(user_id)

    def verify_email(self, token: Optional[str]) -> Dict[str, Any]:
        if not token:
            raise AuthError("MISSING_TOKEN", "Token required", status_code=400)
        user = self.verification_ledger.consume(token)
        return {"success": True, "user": serialize_user(user)}

    # ---- reporting ----
    def users_summary(self) -> Dict[str, Any]:
        total = self.db.exec(select(func.count()).select_from(User)).one()
        verified = self.db.exec(
            select(func.count()).select_from(User).where(User.is_email_verified == True)  # noqa: E712
        ).one()
        by_role = {r.value: 0 for r in Role}
        for role, count in self.db.exec(
            select(User.role, func.count()).group_by(User.role)
        ).all():
            by_role[role] = count
        live_sessions = self.db.exec(
            select(func.count())
            .select_from(RefreshToken)
            .where(RefreshToken.revoked == False, RefreshToken.expires_at > utcnow())  # noqa: E712
        ).one()
        return {
            "total": total,
            "verified": verified,
            "unverified": total - verified,
            "byRole": by_role,
            "activeRefreshTokens": live_sessions,
        }


def deliver_verification_email(
    email_service: EmailService, to_email: str, token: str, display_name: Optional[str] = None
) -> None:
    """Background task body: failures are logged, never raised to the caller."""
    try:
        email_service.send_verification_email(to_email, token, display_name)
    except Exception:
        logger.exception("verification email to %s failed", redact_email(to_email))


def issue_and_deliver_verification(
    session_factory: Callable[[], AbstractContextManager[Session]],
    settings: Settings,
    email_service: EmailService,
    user_id: int,
) -> None:
    """Post-registration side task; runs after the registration commit in its own session."""
    try:
        with session_factory() as db:
            ledger = VerificationLedger(db, ttl=settings.verification_ttl)
            token = ledger.issue_for(user_id)
            user = db.get(User, user_id)
            to_email = user.email
    except AuthError as exc:
        logger.info("verification issue skipped for user=%s: %s", user_id, exc.code)
        return
    except Exception:
        logger.exception("verification issue failed for user=%s", user_id)
        return
    deliver_verification_email(email_service, to_email, token)
