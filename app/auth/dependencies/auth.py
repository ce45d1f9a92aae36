from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlmodel import Session

from app.auth.core.config import Settings, get_settings
from app.auth.core.errors import AuthError
from app.auth.core.tokens import TokenIssuer
from app.auth.models.user import Role
from app.auth.services.auth_service import AuthService
from app.auth.services.email_service import EmailService
from app.auth.services.provider_client import ProviderStatusClient
from app.db.session import get_session, session_scope

# missing headers are reported as MISSING_TOKEN by AuthService, not by FastAPI
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


@lru_cache
def get_token_issuer() -> TokenIssuer:
    return TokenIssuer.from_settings(get_settings())


@lru_cache
def get_email_service() -> EmailService:
    return EmailService.from_settings(get_settings())


@lru_cache
def get_provider_client() -> ProviderStatusClient:
    settings = get_settings()
    return ProviderStatusClient(
        settings.provider_service_url, timeout=settings.provider_lookup_timeout
    )


def get_auth_service(
    db: Session = Depends(get_session),
    issuer: TokenIssuer = Depends(get_token_issuer),
    settings: Settings = Depends(get_settings),
    provider_client: ProviderStatusClient = Depends(get_provider_client),
) -> AuthService:
    return AuthService(db, issuer, settings, provider_client=provider_client)


def get_current_user(
    token: str | None = Depends(oauth2_scheme),
    svc: AuthService = Depends(get_auth_service),
) -> Dict[str, Any]:
    """Strict auth dependency; raises MISSING_TOKEN / INVALID_TOKEN."""
    return svc.authenticate(token)


def require_admin(current: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if current["role"] != Role.admin.value:
        raise AuthError("FORBIDDEN", "Admin role required")
    return current


def get_session_factory():
    """Session factory for background tasks that outlive the request session."""
    return session_scope
