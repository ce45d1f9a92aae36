from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index
from sqlmodel import Field, SQLModel

from app.auth.core.timeutil import utcnow


class RefreshToken(SQLModel, table=True):
    """
    Ledger row for one issued refresh token.
    - jti: the token id embedded in the signed refresh JWT
    - token_hash: sha256 of the full signed token (the raw token is never stored)
    - revoked: flipped once, on rotation or logout; rows are kept for audit
    """
    __tablename__ = "refresh_tokens"
    __table_args__ = (
        Index("rt_revoked_expires_idx", "revoked", "expires_at"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True, nullable=False)
    jti: str = Field(max_length=64, unique=True, nullable=False)
    token_hash: str = Field(max_length=256, nullable=False)
    revoked: bool = Field(default=False, nullable=False)
    expires_at: datetime = Field(sa_type=DateTime(timezone=True), nullable=False)

    created_at: datetime = Field(
        default_factory=utcnow, sa_type=DateTime(timezone=True), nullable=False
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_type=DateTime(timezone=True),
        nullable=False,
        sa_column_kwargs={"onupdate": utcnow},
    )
