import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from app.auth.core.config import get_settings
from app.auth.dependencies.auth import (
    get_auth_service,
    get_email_service,
    get_provider_client,
    get_session_factory,
    get_token_issuer,
)
from app.auth.main import app
from app.auth.services.credential_store import CredentialStore
from app.auth.services.provider_client import ProviderStatusClient
from app.db.session import get_session

API = "/api/v1/auth"


@pytest.fixture
def overrides(engine, issuer, settings, session_factory, email_recorder):
    def _session():
        with Session(engine) as s:
            yield s

    app.dependency_overrides.update(
        {
            get_session: _session,
            get_token_issuer: lambda: issuer,
            get_settings: lambda: settings,
            get_email_service: lambda: email_recorder,
            get_provider_client: lambda: ProviderStatusClient(None),
            get_session_factory: lambda: session_factory,
        }
    )
    yield app.dependency_overrides
    app.dependency_overrides.clear()


@pytest.fixture
def client(overrides):
    with TestClient(app) as c:
        yield c


def _register(client, email="a@x.com", password="password123"):
    r = client.post(f"{API}/register", json={"email": email, "password": password})
    assert r.status_code == 201, r.text
    return r.json()


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


def test_full_session_lifecycle(client, email_recorder):
    body = _register(client)
    assert body["user"]["email"] == "a@x.com"
    assert body["user"]["isEmailVerified"] is False

    # verification mail was sent by the background task
    assert [m["to"] for m in email_recorder.sent] == ["a@x.com"]
    token = email_recorder.sent[0]["token"]

    r = client.get(f"{API}/verify-email", params={"token": token})
    assert r.status_code == 200
    assert r.json()["user"]["isEmailVerified"] is True

    r = client.post(f"{API}/login", json={"email": "a@x.com", "password": "password123"})
    assert r.status_code == 200
    login = r.json()
    assert login["user"]["isEmailVerified"] is True

    r = client.post(f"{API}/refresh", json={"refreshToken": login["refreshToken"]})
    assert r.status_code == 200
    rotated = r.json()

    r = client.post(f"{API}/refresh", json={"refreshToken": login["refreshToken"]})
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "REFRESH_REVOKED"

    r = client.post(f"{API}/logout", json={"refreshToken": rotated["refreshToken"]})
    assert r.json() == {"ok": True}
    r = client.post(f"{API}/refresh", json={"refreshToken": rotated["refreshToken"]})
    assert r.json()["error"]["code"] == "REFRESH_REVOKED"


def test_register_duplicate_email(client):
    _register(client)

    r = client.post(f"{API}/register", json={"email": "A@x.com", "password": "password123"})
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "EMAIL_TAKEN"


@pytest.mark.parametrize(
    "payload",
    [
        {"email": "not-an-email", "password": "password123"},
        {"email": "a@x.com", "password": "short"},
        {"email": "a@x.com", "password": "x" * 73},
        {"email": ("a" * 160) + "@x.com", "password": "password123"},
        {"password": "password123"},
    ],
)
def test_register_validation_errors(client, payload):
    r = client.post(f"{API}/register", json=payload)

    assert r.status_code == 400
    error = r.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["message"]


def test_login_wrong_password(client):
    _register(client)

    r = client.post(f"{API}/login", json={"email": "a@x.com", "password": "password999"})
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "INVALID_CREDENTIALS"


def test_refresh_without_token(client):
    r = client.post(f"{API}/refresh")
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "MISSING_REFRESH"

    r = client.post(f"{API}/refresh", json={"refreshToken": "nope"})
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "INVALID_REFRESH"


def test_logout_without_token_is_ok(client):
    assert client.post(f"{API}/logout").json() == {"ok": True}
    assert client.post(f"{API}/logout", json={}).json() == {"ok": True}


def test_me(client):
    body = _register(client)

    r = client.get(f"{API}/me", headers=_bearer(body["accessToken"]))
    assert r.status_code == 200
    assert r.json() == {"userId": body["user"]["id"], "role": "user"}

    r = client.get(f"{API}/me")
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "MISSING_TOKEN"

    r = client.get(f"{API}/me", headers=_bearer(body["refreshToken"]))
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "INVALID_TOKEN"


def test_send_verification_requires_auth_and_supersedes(client, email_recorder):
    body = _register(client)

    r = client.post(f"{API}/verify-email/send")
    assert r.json()["error"]["code"] == "MISSING_TOKEN"

    r = client.post(f"{API}/verify-email/send", headers=_bearer(body["accessToken"]))
    assert r.json() == {"success": True}
    first, second = [m["token"] for m in email_recorder.sent]

    r = client.get(f"{API}/verify-email", params={"token": first})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "INVALID_TOKEN"

    assert client.get(f"{API}/verify-email", params={"token": second}).status_code == 200
    r = client.post(f"{API}/verify-email/send", headers=_bearer(body["accessToken"]))
    assert r.json()["error"]["code"] == "ALREADY_VERIFIED"


def test_verify_email_without_token(client):
    r = client.get(f"{API}/verify-email")
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "MISSING_TOKEN"


def test_email_failure_does_not_fail_registration(client, overrides, failing_email):
    overrides[get_email_service] = lambda: failing_email

    body = _register(client)
    assert body["user"]["id"]


def test_users_summary_is_admin_only(client, engine):
    user = _register(client)
    _register(client, "boss@x.com")
    with Session(engine) as s:
        CredentialStore(s).set_role("boss@x.com", "admin")

    r = client.get(f"{API}/admin/users-summary", headers=_bearer(user["accessToken"]))
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "FORBIDDEN"

    # role is baked into the access token, so log in again after promotion
    admin = client.post(
        f"{API}/login", json={"email": "boss@x.com", "password": "password123"}
    ).json()
    r = client.get(f"{API}/admin/users-summary", headers=_bearer(admin["accessToken"]))
    assert r.status_code == 200
    assert r.json()["total"] == 2
    assert r.json()["byRole"]["admin"] == 1


def test_request_id_is_echoed_in_header_and_error(client):
    r = client.get(f"{API}/me", headers={"x-request-id": "req-123"})

    assert r.headers["x-request-id"] == "req-123"
    assert r.json()["error"]["requestId"] == "req-123"


def test_request_id_is_generated(client):
    r = client.get("/health")

    assert r.json() == {"ok": True, "service": "auth-service"}
    assert r.headers["x-request-id"]


def test_health_db(client):
    assert client.get("/health/db").json() == {"ok": True}


def test_unexpected_error_uses_internal_envelope(overrides):
    def broken():
        raise RuntimeError("boom")

    overrides[get_auth_service] = broken
    with TestClient(app, raise_server_exceptions=False) as c:
        r = c.post(f"{API}/logout", headers={"x-request-id": "req-500"})

    assert r.status_code == 500
    assert r.headers["x-request-id"] == "req-500"
    assert r.json() == {
        "error": {"code": "INTERNAL_ERROR", "message": "Internal error", "requestId": "req-500"}
    }
