import os
import sys
from contextlib import contextmanager
from datetime import timedelta
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# app.db.session builds its engine at import time
os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_ACCESS_SECRET", "test-access-secret")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret")

from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from app.auth.core.config import Settings  # noqa: E402
from app.auth.core.timeutil import utcnow  # noqa: E402
from app.auth.core.tokens import TokenIssuer  # noqa: E402
from app.auth.services.email_service import EmailService  # noqa: E402
from app.db import base as _models  # noqa: F401,E402

ACCESS_SECRET = "test-access-secret"
REFRESH_SECRET = "test-refresh-secret"


class RecordingEmailService(EmailService):
    def __init__(self, fail: bool = False):
        super().__init__()
        self.sent = []
        self.fail = fail

    def send_verification_email(self, to_email, token, display_name=None):
        if self.fail:
            raise ConnectionError("smtp down")
        self.sent.append({"to": to_email, "token": token})


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture
def issuer():
    return TokenIssuer(access_secret=ACCESS_SECRET, refresh_secret=REFRESH_SECRET)


@pytest.fixture
def make_issuer():
    """Issuer whose clock is shifted by `offset`, sharing the test secrets."""

    def factory(offset: timedelta = timedelta(0)) -> TokenIssuer:
        return TokenIssuer(
            access_secret=ACCESS_SECRET,
            refresh_secret=REFRESH_SECRET,
            clock=lambda: utcnow() + offset,
        )

    return factory


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        ENV="test",
        JWT_ACCESS_SECRET=ACCESS_SECRET,
        JWT_REFRESH_SECRET=REFRESH_SECRET,
    )


@pytest.fixture
def session_factory(engine):
    @contextmanager
    def factory():
        with Session(engine) as s:
            yield s

    return factory


@pytest.fixture
def email_recorder():
    return RecordingEmailService()


@pytest.fixture
def failing_email():
    return RecordingEmailService(fail=True)
