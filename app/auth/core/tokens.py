from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Tuple
from uuid import uuid4

from jose import jwt
from jose.exceptions import ExpiredSignatureError, JOSEError

from app.auth.core.errors import AuthError
from app.auth.core.timeutil import utcnow


def sha256_hex(s: str) -> str:
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def new_refresh_jti() -> str:
    return str(uuid4())


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


class TokenIssuer:
    """
    Stateless signer/verifier for access and refresh JWTs.

    The two secrets are never interchangeable: each token is signed with its
    own key and carries a ``typ`` claim that is checked on decode, so a
    refresh token fails access verification and vice versa.
    """

    def __init__(
        self,
        *,
        access_secret: str,
        refresh_secret: str,
        algorithm: str = "HS256",
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=30),
        access_leeway_seconds: int = 5,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if access_secret == refresh_secret:
            raise ValueError("access and refresh secrets must differ")
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self._alg = algorithm
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self._leeway = access_leeway_seconds
        self._clock = clock

    @classmethod
    def from_settings(cls, settings) -> "TokenIssuer":
        return cls(
            access_secret=settings.jwt_access_secret,
            refresh_secret=settings.jwt_refresh_secret,
            algorithm=settings.jwt_algorithm,
            access_ttl=settings.access_ttl,
            refresh_ttl=settings.refresh_ttl,
            access_leeway_seconds=settings.access_clock_skew_seconds,
        )

    # ---- 공통 ----
    def _make_jwt(
        self, payload: Dict[str, Any], secret: str, ttl: timedelta
    ) -> Tuple[str, datetime]:
        now = self._clock()
        exp = now + ttl
        to_encode = payload.copy()
        to_encode["iat"] = int(now.timestamp())
        to_encode["exp"] = int(exp.timestamp())
        return jwt.encode(to_encode, secret, algorithm=self._alg), exp

    def _decode(self, token: str, secret: str, typ: str, leeway: int = 0) -> Dict[str, Any]:
        try:
            payload = jwt.decode(
                token, secret, algorithms=[self._alg], options={"leeway": leeway}
            )
        except ExpiredSignatureError:
            raise AuthError("TOKEN_EXPIRED", "Token expired")
        except JOSEError:
            raise AuthError("INVALID_TOKEN", "Invalid token")
        if payload.get("typ") != typ or not payload.get("sub"):
            raise AuthError("INVALID_TOKEN", "Invalid token")
        return payload

    # ---- Access Token ----
    def mint_access_token(self, user) -> str:
        payload = {"sub": str(user.id), "role": user.role, "typ": "access"}
        token, _ = self._make_jwt(payload, self._access_secret, self.access_ttl)
        return token

    def verify_access_token(self, token: str) -> Dict[str, Any]:
        return self._decode(token, self._access_secret, "access", leeway=self._leeway)

    # ---- Refresh Token (회전 전제) ----
    def mint_refresh_token(self, user, jti: str) -> Tuple[str, datetime]:
        payload = {"sub": str(user.id), "jti": jti, "typ": "refresh"}
        return self._make_jwt(payload, self._refresh_secret, self.refresh_ttl)

    def verify_refresh_token(self, token: str) -> Dict[str, Any]:
        payload = self._decode(token, self._refresh_secret, "refresh")
        if not payload.get("jti"):
            raise AuthError("INVALID_TOKEN", "Invalid token")
        return payload
