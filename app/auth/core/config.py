# app/auth/core/config.py
from __future__ import annotations

import re
from datetime import timedelta
from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEV_ACCESS_SECRET = "dev_access_secret_change_me"
_DEV_REFRESH_SECRET = "dev_refresh_secret_change_me"

_TTL_RE = re.compile(r"^(\d+)\s*([smhd])$")
_TTL_UNITS = {"s": "seconds", "m": "minutes", "h": "hours", "d": "days"}


def parse_ttl(ttl: str) -> timedelta:
    """'15m' -> 15 minutes. Malformed values fall back to 15 minutes."""
    m = _TTL_RE.match((ttl or "").strip())
    if not m:
        return timedelta(minutes=15)
    return timedelta(**{_TTL_UNITS[m.group(2)]: int(m.group(1))})


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    env: str = Field("dev", alias="ENV")
    app_version: str = Field("0.1.0", alias="APP_VERSION")

    # 서명 키 (access/refresh는 절대 공유하지 않는다)
    jwt_access_secret: str = Field(_DEV_ACCESS_SECRET, alias="JWT_ACCESS_SECRET")
    jwt_refresh_secret: str = Field(_DEV_REFRESH_SECRET, alias="JWT_REFRESH_SECRET")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_ttl: str = Field("15m", alias="ACCESS_TOKEN_TTL")
    refresh_token_ttl: str = Field("30d", alias="REFRESH_TOKEN_TTL")
    access_clock_skew_seconds: int = Field(5, alias="ACCESS_CLOCK_SKEW_SECONDS")
    verification_token_ttl_hours: int = Field(24, alias="VERIFICATION_TOKEN_TTL_HOURS")

    # 외부 협력 서비스
    provider_service_url: Optional[str] = Field(None, alias="PROVIDER_SERVICE_URL")
    provider_lookup_timeout: float = Field(5.0, alias="PROVIDER_LOOKUP_TIMEOUT")
    check_email_domain: bool = Field(False, alias="CHECK_EMAIL_DOMAIN")
    dns_timeout: float = Field(3.0, alias="DNS_TIMEOUT")

    # 메일
    smtp_host: Optional[str] = Field(None, alias="SMTP_HOST")
    smtp_port: int = Field(587, alias="SMTP_PORT")
    smtp_user: Optional[str] = Field(None, alias="SMTP_USER")
    smtp_password: Optional[str] = Field(None, alias="SMTP_PASS")
    smtp_secure: bool = Field(False, alias="SMTP_SECURE")
    smtp_from: str = Field("miservicio <noreply@miservicio.com>", alias="SMTP_FROM")
    frontend_url: str = Field("http://localhost:3000", alias="FRONTEND_URL")

    cors_origins: str = Field("", alias="CORS_ORIGINS")

    @property
    def access_ttl(self) -> timedelta:
        return parse_ttl(self.access_token_ttl)

    @property
    def refresh_ttl(self) -> timedelta:
        return parse_ttl(self.refresh_token_ttl)

    @property
    def verification_ttl(self) -> timedelta:
        return timedelta(hours=self.verification_token_ttl_hours)

    @property
    def cors_origin_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    settings = Settings()
    if settings.env == "prod" and (
        settings.jwt_access_secret == _DEV_ACCESS_SECRET
        or settings.jwt_refresh_secret == _DEV_REFRESH_SECRET
    ):
        raise RuntimeError("JWT_ACCESS_SECRET / JWT_REFRESH_SECRET must be set in prod")
    if settings.jwt_access_secret == settings.jwt_refresh_secret:
        raise RuntimeError("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must differ")
    return settings
