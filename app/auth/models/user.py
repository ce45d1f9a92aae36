from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from app.auth.core.timeutil import utcnow


class Role(str, Enum):
    user = "user"
    provider = "provider"
    admin = "admin"


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    # stored case-folded, see credential_store.normalize_email
    email: str = Field(max_length=160, index=True, unique=True, nullable=False)
    password_hash: str = Field(max_length=120, nullable=False)
    role: str = Field(default=Role.user.value, max_length=20, nullable=False)
    is_email_verified: bool = Field(default=False, nullable=False)

    created_at: datetime = Field(
        default_factory=utcnow, sa_type=DateTime(timezone=True), nullable=False
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_type=DateTime(timezone=True),
        nullable=False,
        sa_column_kwargs={"onupdate": utcnow},
    )
