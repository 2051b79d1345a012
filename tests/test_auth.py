"""Connection authenticator and REST bearer auth tests."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from eventbell.auth.connection import (
    ConnectionAuthenticator,
    extract_token,
    origin_allowed,
)
from eventbell.auth.identity import AuthenticationFailure, subject_from_token
from eventbell.auth.jwt import TokenError, create_access_token, verify_token
from eventbell.config import settings


def _token(**claims):
    now = datetime.now(timezone.utc)
    payload = {"type": "access", "iat": now, "exp": now + timedelta(minutes=5)}
    payload.update(claims)
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


# ─── Tokens ──────────────────────────────────────────────


def test_access_token_claims():
    payload = verify_token(create_access_token(7, email="x@example.com"))
    assert payload["user_id"] == 7
    assert payload["type"] == "access"
    assert payload["email"] == "x@example.com"
    assert {"exp", "iat", "jti"} <= payload.keys()


def test_tokens_have_unique_jti():
    a = verify_token(create_access_token(1))
    b = verify_token(create_access_token(1))
    assert a["jti"] != b["jti"]


def test_bad_signature_rejected():
    forged = jwt.encode({"user_id": 1}, "a-completely-different-signing-secret-value", algorithm="HS256")
    with pytest.raises(TokenError):
        verify_token(forged)


def test_expired_token_refused():
    expired = _token(user_id=1, exp=datetime.now(timezone.utc) - timedelta(seconds=5))
    with pytest.raises(AuthenticationFailure) as exc:
        subject_from_token(expired)
    assert "expired" in exc.value.reason


def test_refresh_token_refused():
    with pytest.raises(AuthenticationFailure) as exc:
        subject_from_token(_token(user_id=1, type="refresh"))
    assert exc.value.reason == "not_an_access_token"


def test_token_without_user_id_refused():
    with pytest.raises(AuthenticationFailure) as exc:
        subject_from_token(_token(sub="1"))
    assert exc.value.reason == "token_without_user_id"


@pytest.mark.parametrize("token", [None, ""])
def test_missing_token_refused(token):
    with pytest.raises(AuthenticationFailure) as exc:
        subject_from_token(token)
    assert exc.value.reason == "missing_token"


# ─── Handshake credential lookup ─────────────────────────


def test_extract_token_prefers_query_param():
    assert extract_token({"token": "q"}, {"authorization": "Bearer h"}) == "q"


def test_extract_token_falls_back_to_header():
    assert extract_token({}, {"authorization": "Bearer h"}) == "h"


def test_extract_token_ignores_non_bearer_header():
    assert extract_token({}, {"authorization": "Basic abc"}) is None
    assert extract_token({"token": ""}, {}) is None


def test_origin_allow_list():
    allowed = settings.cable_allowed_origins
    assert origin_allowed("http://localhost:5173", allowed)
    assert origin_allowed("https://localhost", allowed)
    assert origin_allowed(None, allowed)  # non-browser client
    assert not origin_allowed("https://evil.example.com", allowed)
    assert not origin_allowed("http://localhost.evil.com.example", [r"http://localhost:\d+"])


@pytest.mark.asyncio
async def test_authenticator_accepts_active_user(session_factory):
    auth = ConnectionAuthenticator(session_factory)
    identity = await auth.authenticate({"token": create_access_token(1)}, {})
    assert identity.user_id == 1
    assert identity.email == "alice@example.com"


@pytest.mark.asyncio
@pytest.mark.parametrize("user_id", [3, 999])
async def test_authenticator_refuses_inactive_or_unknown(session_factory, user_id):
    auth = ConnectionAuthenticator(session_factory)
    with pytest.raises(AuthenticationFailure) as exc:
        await auth.authenticate({"token": create_access_token(user_id)}, {})
    assert exc.value.reason == "unknown_or_inactive_user"


# ─── REST bearer dependency ──────────────────────────────


@pytest.mark.asyncio
async def test_rest_requires_token(client):
    resp = await client.get("/api/v1/notifications")
    assert resp.status_code == 401
    assert resp.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_rest_rejects_garbage_token(client):
    resp = await client.get(
        "/api/v1/notifications", headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_rest_rejects_deactivated_user(client):
    token = create_access_token(3)
    resp = await client.get(
        "/api/v1/notifications", headers={"Authorization": f"Bearer {token}"}
    )
    assert resp.status_code == 401
