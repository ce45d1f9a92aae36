from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status

from app.auth.core.config import Settings, get_settings
from app.auth.dependencies.auth import (
    get_auth_service,
    get_current_user,
    get_email_service,
    get_session_factory,
    require_admin,
)
from app.auth.schemas.auth import (
    AuthResponse,
    CredentialsReq,
    MeResponse,
    OkResponse,
    RefreshReq,
    SuccessResponse,
    UsersSummary,
    VerifyEmailResponse,
)
from app.auth.services.auth_service import (
    AuthService,
    deliver_verification_email,
    issue_and_deliver_verification,
)
from app.auth.services.email_service import EmailService

auth_router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


@auth_router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(
    body: CredentialsReq,
    background: BackgroundTasks,
    svc: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
    email_service: EmailService = Depends(get_email_service),
    session_factory=Depends(get_session_factory),
):
    result = svc.register(body.email, body.password)
    # 인증 메일은 응답 이후에 보낸다 (실패해도 가입은 성공)
    background.add_task(
        issue_and_deliver_verification,
        session_factory,
        settings,
        email_service,
        result["user"]["id"],
    )
    return result


@auth_router.post("/login", response_model=AuthResponse)
def login(body: CredentialsReq, svc: AuthService = Depends(get_auth_service)):
    return svc.login(body.email, body.password)


@auth_router.post("/refresh", response_model=AuthResponse)
def refresh(body: Optional[RefreshReq] = None, svc: AuthService = Depends(get_auth_service)):
    return svc.refresh(body.refreshToken if body else None)


@auth_router.post("/logout", response_model=OkResponse)
def logout(body: Optional[RefreshReq] = None, svc: AuthService = Depends(get_auth_service)):
    return svc.logout(body.refreshToken if body else None)


@auth_router.get("/me", response_model=MeResponse)
def me(current: Dict[str, Any] = Depends(get_current_user)):
    return current


@auth_router.post("/verify-email/send", response_model=SuccessResponse)
def send_verification_email(
    background: BackgroundTasks,
    current: Dict[str, Any] = Depends(get_current_user),
    svc: AuthService = Depends(get_auth_service),
    email_service: EmailService = Depends(get_email_service),
):
    token = svc.send_verification(current["userId"])
    user = svc.credentials.get_identity(current["userId"])
    background.add_task(deliver_verification_email, email_service, user.email, token)
    return {"success": True}


@auth_router.get("/verify-email", response_model=VerifyEmailResponse)
def verify_email(
    token: Optional[str] = Query(None),
    svc: AuthService = Depends(get_auth_service),
):
    return svc.verify_email(token)


@auth_router.get("/admin/users-summary", response_model=UsersSummary)
def users_summary(
    _admin: Dict[str, Any] = Depends(require_admin),
    svc: AuthService = Depends(get_auth_service),
):
    return svc.users_summary()
