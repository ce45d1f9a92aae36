"""Centralized SQLModel imports to ensure metadata is populated."""

from app.auth.models import user as _user  # noqa: F401
from app.auth.models import refresh_token as _refresh_token  # noqa: F401
from app.auth.models import verification_token as _verification_token  # noqa: F401
