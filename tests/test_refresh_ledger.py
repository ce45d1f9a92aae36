import threading
from datetime import timedelta

import pytest
from sqlmodel import Session, SQLModel, create_engine, select

from app.auth.core.errors import AuthError
from app.auth.core.timeutil import utcnow
from app.auth.core.tokens import sha256_hex
from app.auth.models.refresh_token import RefreshToken
from app.auth.services.credential_store import CredentialStore
from app.auth.services.refresh_ledger import RefreshLedger


@pytest.fixture
def user(db):
    return CredentialStore(db).create_identity("a@x.com", "password123")


@pytest.fixture
def ledger(db, issuer):
    return RefreshLedger(db, issuer)


def _rows(db):
    return db.exec(select(RefreshToken)).all()


def test_issue_persists_hash_not_token(db, ledger, user):
    pair = ledger.issue(user)

    (row,) = _rows(db)
    assert row.user_id == user.id
    assert row.revoked is False
    assert row.token_hash == sha256_hex(pair.refresh_token)
    assert row.token_hash != pair.refresh_token


def test_rotate_consumes_old_and_issues_new(db, ledger, user):
    first = ledger.issue(user)

    rotated_user, second = ledger.rotate(first.refresh_token)

    assert rotated_user.id == user.id
    assert second.refresh_token != first.refresh_token
    by_hash = {r.token_hash: r for r in _rows(db)}
    assert by_hash[sha256_hex(first.refresh_token)].revoked is True
    assert by_hash[sha256_hex(second.refresh_token)].revoked is False


def test_rotated_token_cannot_be_replayed(ledger, user):
    first = ledger.issue(user)
    _, second = ledger.rotate(first.refresh_token)

    with pytest.raises(AuthError) as excinfo:
        ledger.rotate(first.refresh_token)
    assert excinfo.value.code == "REFRESH_REVOKED"

    # the replay does not affect the successor
    _, third = ledger.rotate(second.refresh_token)
    assert third.refresh_token


def test_expired_record_is_revoked(db, issuer, ledger, user):
    pair = ledger.issue(user)
    later = RefreshLedger(db, issuer, clock=lambda: utcnow() + timedelta(days=31))

    with pytest.raises(AuthError) as excinfo:
        later.rotate(pair.refresh_token)
    assert excinfo.value.code == "REFRESH_REVOKED"


def test_expired_signature_is_revoked(db, make_issuer, user):
    past = make_issuer(-timedelta(days=31))
    pair = RefreshLedger(db, past).issue(user)

    with pytest.raises(AuthError) as excinfo:
        RefreshLedger(db, make_issuer()).rotate(pair.refresh_token)
    assert excinfo.value.code == "REFRESH_REVOKED"


@pytest.mark.parametrize("token", ["garbage", "a.b.c", ""])
def test_malformed_refresh_is_invalid(ledger, token):
    with pytest.raises(AuthError) as excinfo:
        ledger.rotate(token)
    assert excinfo.value.code == "INVALID_REFRESH"


def test_access_token_is_not_a_refresh_token(ledger, user):
    pair = ledger.issue(user)

    with pytest.raises(AuthError) as excinfo:
        ledger.rotate(pair.access_token)
    assert excinfo.value.code == "INVALID_REFRESH"


def test_unknown_jti_is_revoked(db, issuer, ledger, user):
    # validly signed but never persisted
    token, _ = issuer.mint_refresh_token(user, "not-in-ledger")

    with pytest.raises(AuthError) as excinfo:
        ledger.rotate(token)
    assert excinfo.value.code == "REFRESH_REVOKED"


def test_hash_mismatch_is_revoked(db, ledger, user):
    pair = ledger.issue(user)
    (row,) = _rows(db)
    row.token_hash = sha256_hex("something else")
    db.add(row)
    db.commit()

    with pytest.raises(AuthError) as excinfo:
        ledger.rotate(pair.refresh_token)
    assert excinfo.value.code == "REFRESH_REVOKED"


def test_revoke_is_idempotent(db, ledger, user):
    pair = ledger.issue(user)

    ledger.revoke(pair.refresh_token)
    ledger.revoke(pair.refresh_token)
    ledger.revoke(None)
    ledger.revoke("not-a-jwt")

    (row,) = _rows(db)
    assert row.revoked is True
    with pytest.raises(AuthError) as excinfo:
        ledger.rotate(pair.refresh_token)
    assert excinfo.value.code == "REFRESH_REVOKED"


def test_revoke_all_for_user(db, ledger, user):
    other = CredentialStore(db).create_identity("b@x.com", "password123")
    ledger.issue(user)
    ledger.issue(user)
    kept = ledger.issue(other)

    assert ledger.revoke_all_for_user(user.id) == 2
    _, fresh = ledger.rotate(kept.refresh_token)
    assert fresh.refresh_token


def test_concurrent_rotation_has_single_winner(tmp_path, issuer):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as s:
        user = CredentialStore(s).create_identity("race@x.com", "password123")
        pair = RefreshLedger(s, issuer).issue(user)

    barrier = threading.Barrier(2)
    outcomes = []
    lock = threading.Lock()

    def worker():
        with Session(engine) as s:
            ledger = RefreshLedger(s, issuer)
            barrier.wait()
            try:
                ledger.rotate(pair.refresh_token)
                result = "ok"
            except AuthError as exc:
                result = exc.code
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    engine.dispose()
    assert sorted(outcomes) == ["REFRESH_REVOKED", "ok"]
