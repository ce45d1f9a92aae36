from __future__ import annotations

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

EMAIL_MAX_LENGTH = 160


class CredentialsReq(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=72)

    @field_validator("email", mode="before")
    @classmethod
    def _email_length(cls, v):
        if isinstance(v, str) and len(v.strip()) > EMAIL_MAX_LENGTH:
            raise ValueError(f"email must be at most {EMAIL_MAX_LENGTH} characters")
        return v.strip() if isinstance(v, str) else v


class RefreshReq(BaseModel):
    refreshToken: Optional[str] = None


class UserOut(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    email: str
    role: str
    isEmailVerified: bool
    isProvider: bool = False


class AuthResponse(BaseModel):
    user: UserOut
    accessToken: str
    refreshToken: str


class OkResponse(BaseModel):
    ok: bool = True


class SuccessResponse(BaseModel):
    success: bool = True


class VerifyEmailResponse(BaseModel):
    success: bool = True
    user: UserOut


class MeResponse(BaseModel):
    userId: int
    role: str


class UsersSummary(BaseModel):
    total: int
    verified: int
    unverified: int
    byRole: Dict[str, int]
    activeRefreshTokens: int
