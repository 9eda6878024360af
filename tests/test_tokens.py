"""Client token issuance, verification, revocation and housekeeping."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from homepair.config import settings
from homepair.errors import AuthenticationError, ConflictError, NotFoundError
from homepair.services.token_service import TokenService
from homepair.utils.security import create_admin_token, hash_token

from conftest import add_client


def test_hash_is_deterministic_and_distinct():
    assert hash_token("abc") == hash_token("abc")
    assert hash_token("abc") != hash_token("abd")
    assert len(hash_token("abc")) == 64
    assert TokenService.hash("abc") == hash_token("abc")


def test_issue_and_verify_round_trip(tokens, clock):
    credential, expires_at = tokens.issue("cli_1", ["area_1", "area_2"])
    assert expires_at - clock.now == timedelta(days=3650)

    verified = tokens.verify(credential)
    assert verified.client_id == "cli_1"
    assert verified.assigned_areas == ["area_1", "area_2"]


def test_two_credentials_for_same_client_differ(tokens):
    first, _ = tokens.issue("cli_1", [])
    second, _ = tokens.issue("cli_1", [])
    assert first != second


def test_verify_rejects_admin_token(tokens):
    with pytest.raises(AuthenticationError):
        tokens.verify(create_admin_token("admin"))


def test_verify_rejects_bad_signature_and_garbage(tokens):
    claims = jwt.decode(tokens.issue("cli_1", [])[0], options={"verify_signature": False})
    forged = jwt.encode(claims, "some-other-secret-that-is-long-enough", algorithm="HS256")
    with pytest.raises(AuthenticationError):
        tokens.verify(forged)
    with pytest.raises(AuthenticationError):
        tokens.verify("not-a-jwt")


def test_verify_rejects_expired(tokens):
    now = datetime.now(timezone.utc)
    expired = jwt.encode(
        {
            "client_id": "cli_1",
            "role": "client",
            "type": "client",
            "assigned_areas": [],
            "iat": now - timedelta(days=2),
            "exp": now - timedelta(days=1),
            "iss": settings.jwt_issuer,
            "aud": settings.jwt_audience,
        },
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )
    with pytest.raises(AuthenticationError):
        tokens.verify(expired)


def test_verify_rejects_wrong_audience(tokens):
    now = datetime.now(timezone.utc)
    foreign = jwt.encode(
        {
            "client_id": "cli_1",
            "role": "client",
            "type": "client",
            "assigned_areas": [],
            "exp": now + timedelta(days=1),
            "iss": settings.jwt_issuer,
            "aud": "someone-else",
        },
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )
    with pytest.raises(AuthenticationError):
        tokens.verify(foreign)


def test_revoke_is_idempotent(tokens, engine):
    client = add_client(engine)
    issued = tokens.issue_for_client(client.id, [])
    token_hash = hash_token(issued.credential)

    assert tokens.revoke(token_hash, "lost device") is True
    assert tokens.revoke(token_hash, "lost device again") is False
    assert tokens.revoke(hash_token("unknown"), "nothing") is False

    token = tokens.get_token(issued.token.id)
    assert token.is_revoked
    assert token.revoked_reason == "lost device"


def test_revoke_token_by_id_conflicts_second_time(tokens, engine):
    client = add_client(engine)
    issued = tokens.issue_for_client(client.id, [])

    revoked = tokens.revoke_token(issued.token.id, "admin")
    assert revoked.is_revoked and revoked.revoked_at is not None
    with pytest.raises(ConflictError):
        tokens.revoke_token(issued.token.id, "admin")
    with pytest.raises(NotFoundError):
        tokens.revoke_token("tok_missing", "admin")


def test_issue_for_client_keeps_existing_unless_asked(tokens, store, engine, clock):
    client = add_client(engine)
    first = tokens.issue_for_client(client.id, ["a"])
    tokens.issue_for_client(client.id, ["a"])
    assert len(store.list_active_tokens(client.id, clock.now)) == 2

    tokens.issue_for_client(client.id, ["b"], revoke_existing=True, issued_by="admin")
    active = store.list_active_tokens(client.id, clock.now)
    assert len(active) == 1
    assert active[0].assigned_areas == ["b"]
    assert tokens.get_token(first.token.id).revoked_reason == "Replaced by new token from admin"


def test_issue_for_unknown_or_inactive_client(tokens, store, engine, clock):
    with pytest.raises(NotFoundError):
        tokens.issue_for_client("cli_missing", [])

    client = add_client(engine)
    store.deactivate_client(client.id, "gone", clock.now)
    with pytest.raises(NotFoundError):
        tokens.issue_for_client(client.id, [])


def test_update_scope(tokens, engine):
    client = add_client(engine)
    issued = tokens.issue_for_client(client.id, ["a"])

    updated = tokens.update_scope(issued.token.id, ["b", "c", "b"])
    assert updated.assigned_areas == ["b", "c"]

    tokens.revoke_token(issued.token.id, "done")
    with pytest.raises(ConflictError):
        tokens.update_scope(issued.token.id, ["a"])


def test_sweep_deletes_only_expired(tokens, engine, clock, test_settings):
    client = add_client(engine)
    issued = tokens.issue_for_client(client.id, [])
    assert tokens.sweep_expired() == 0

    clock.advance(timedelta(days=test_settings.client_token_expire_days).total_seconds())
    assert tokens.sweep_expired() == 1
    with pytest.raises(NotFoundError):
        tokens.get_token(issued.token.id)


def test_stats(tokens, store, engine, clock):
    client = add_client(engine)
    used = tokens.issue_for_client(client.id, [])
    revoked = tokens.issue_for_client(client.id, [])
    tokens.issue_for_client(client.id, [])

    store.record_token_use(used.token.id, client.id, clock.now)
    tokens.revoke_token(revoked.token.id, "test")

    stats = tokens.stats()
    assert stats == {
        "total": 3,
        "active": 2,
        "revoked": 1,
        "expired": 0,
        "recently_used": 1,
    }


def test_credentials_follow_injected_settings(store, test_settings, tokens, clock):
    custom = test_settings.model_copy(update={"jwt_issuer": "homepair-lab", "jwt_audience": "lab-panel"})
    lab_tokens = TokenService(store, custom, clock=clock)

    credential, _ = lab_tokens.issue("cli_1", ["area_1"])
    claims = jwt.decode(credential, options={"verify_signature": False})
    assert claims["iss"] == "homepair-lab"
    assert claims["aud"] == "lab-panel"

    assert lab_tokens.verify(credential).client_id == "cli_1"
    with pytest.raises(AuthenticationError):
        tokens.verify(credential)


def test_expiry_claim_matches_stored_expiry(tokens):
    credential, expires_at = tokens.issue("cli_1", [])
    claims = jwt.decode(credential, options={"verify_signature": False})
    assert expires_at.tzinfo is not None
    assert claims["exp"] == int(expires_at.timestamp())
